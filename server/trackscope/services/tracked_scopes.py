"""
Recognition of the syntactic positions the framework re-runs when their
reactive reads change.

Each recognized position becomes a `TrackedScopeEntry` on the current frame:

* FUNCTION: the node must be a function; the framework owns calling it.
* CALLED_FUNCTION: a function the framework or the platform calls for us
  (event handlers, lifecycle hooks, timers). Those may be async.
* EXPRESSION: any expression; every reactive read inside it is tracked.
"""
from __future__ import annotations

from typing import Iterable, List, Optional

from tree_sitter import Node

from trackscope.services import primitives
from trackscope.services.bindings import BindingRegistry
from trackscope.services.diagnostics import DiagnosticSink, MessageKind
from trackscope.services.imports import ImportAliasTable
from trackscope.services.scope_stack import Expectation, ScopeStack, TrackedScopeEntry
from trackscope.services.scopes import ScopeProvider, trace
from trackscope.services.syntax import (
    call_arguments,
    call_callee,
    find_parent,
    function_params,
    is_async_function,
    is_function_node,
    is_identifier,
    is_markup_element,
    is_program_or_function_node,
    logical_parent,
    markup_attribute_name,
    markup_element_name,
    markup_expression,
    node_text,
    same_node,
    unwrap_parens,
)

MEMBER_ACCESS_TYPES = frozenset({"member_expression", "subscript_expression"})


def match_tracked_scope(entry: TrackedScopeEntry, node: Node, scope_node: Node) -> bool:
    if entry.expectation is Expectation.EXPRESSION:
        return is_within(node, entry.node, scope_node)
    return same_node(node, entry.node)


def is_within(node: Node, container: Node, scope_node: Node) -> bool:
    """True when `container` is `node` or one of its ancestors below `scope_node`."""
    current: Optional[Node] = node
    while current is not None:
        if same_node(current, container):
            return True
        if same_node(current, scope_node):
            return False
        current = current.parent
    return False


def is_dom_element_tag(opening: Optional[Node]) -> bool:
    name = markup_element_name(opening)
    return is_identifier(name) and primitives.is_dom_element_name(node_text(name))


def _is_provider_element(opening: Optional[Node]) -> bool:
    name = markup_element_name(opening)
    if name is None:
        return False
    if is_identifier(name):
        return node_text(name).endswith("Provider")
    if name.type in {"member_expression", "nested_identifier"}:
        last = name.named_children[-1] if name.named_children else None
        return last is not None and node_text(last) == "Provider"
    return False


class TrackedScopeClassifier:
    def __init__(
        self,
        stack: ScopeStack,
        registry: BindingRegistry,
        imports: ImportAliasTable,
        provider: ScopeProvider,
        sink: DiagnosticSink,
        custom_reactive_functions: Iterable[str] = (),
    ):
        self.stack = stack
        self.registry = registry
        self.imports = imports
        self.provider = provider
        self.sink = sink
        self.custom_reactive_functions = frozenset(custom_reactive_functions)

    def push(self, node: Optional[Node], expectation: Expectation) -> None:
        if node is None:
            return
        self.stack.current().tracked_scopes.append(TrackedScopeEntry(node, expectation))
        # Called functions run outside the tracking window anyway.
        if expectation is not Expectation.CALLED_FUNCTION and is_async_function(node):
            self.sink.report(MessageKind.DISALLOWED_ASYNC_TRACKED_SCOPE, node)

    def is_reactive_hook(self, name: str) -> bool:
        return primitives.is_reactive_hook_name(name) or name in self.custom_reactive_functions

    def permissively_track(self, node: Node) -> None:
        """
        Track the first function-valued or bare-identifier sub-expression on
        every branch of an argument passed to a user-defined hook.
        """
        pending = [node]
        while pending:
            current = pending.pop()
            traced = trace(current, self.provider)
            if is_function_node(traced) or (is_identifier(traced) and self._is_bare_value(traced)):
                self.push(current, Expectation.CALLED_FUNCTION)
                continue
            pending.extend(c for c in reversed(current.named_children) if c.type != "comment")

    @staticmethod
    def _is_bare_value(identifier: Node) -> bool:
        parent = logical_parent(identifier)
        if parent is None:
            return True
        if parent.type in MEMBER_ACCESS_TYPES:
            return False
        if parent.type == "call_expression" and same_node(call_callee(parent), identifier):
            return False
        return True

    # --- per node kind ---

    def classify_markup_expression(self, container: Node) -> None:
        expression = markup_expression(container)
        if expression is None:
            return
        if expression.type == "spread_element":
            argument = next((c for c in expression.named_children if c.type != "comment"), None)
            self.push(unwrap_parens(argument), Expectation.EXPRESSION)
            return

        parent = container.parent
        if parent is not None and parent.type == "jsx_attribute":
            name_node = markup_attribute_name(parent)
            name = node_text(name_node) if name_node is not None else ""
            opening = parent.parent
            if primitives.EVENT_HANDLER_ATTRIBUTE.match(name) and is_dom_element_tag(opening):
                self.push(expression, Expectation.CALLED_FUNCTION)
                return
            if (
                name_node is not None
                and name_node.type == "jsx_namespace_name"
                and name_node.named_children
                and node_text(name_node.named_children[0]) == "use"
                and is_function_node(expression)
            ):
                self.push(expression, Expectation.CALLED_FUNCTION)
                return
            if name == "value" and _is_provider_element(opening):
                return
            if (
                name_node is not None
                and name_node.type != "jsx_namespace_name"
                and primitives.STATIC_ATTRIBUTE.match(name)
                and is_identifier(markup_element_name(opening))
                and not is_dom_element_tag(opening)
            ):
                return
            if name == "ref" and is_function_node(expression):
                self.push(expression, Expectation.CALLED_FUNCTION)
                return
        elif is_markup_element(parent) and is_function_node(expression):
            self.push(expression, Expectation.FUNCTION)
            return
        self.push(expression, Expectation.EXPRESSION)

    def classify_new(self, node: Node) -> None:
        constructor = unwrap_parens(node.child_by_field_name("constructor"))
        args = call_arguments(node)
        if is_identifier(constructor) and args and node_text(constructor) in primitives.WEB_OBSERVERS:
            self.push(args[0], Expectation.CALLED_FUNCTION)

    def classify_call(self, node: Node) -> None:
        callee = call_callee(node)
        args = call_arguments(node)
        arg0 = args[0] if args else None
        arg1 = args[1] if len(args) > 1 else None
        if callee is None:
            return

        if is_identifier(callee):
            name = node_text(callee)
            match = self.imports.match
            if match(primitives.TRACKED_FUNCTION_PRIMITIVES, name) or (
                match("createResource", name) and len(args) >= 2
            ):
                self.push(arg0, Expectation.FUNCTION)
            elif match(primitives.LIFECYCLE_PRIMITIVES, name) or name in primitives.TIMER_FUNCTIONS:
                self.push(arg0, Expectation.CALLED_FUNCTION)
            elif match("on", name):
                if arg0 is not None:
                    if arg0.type == "array":
                        for element in arg0.named_children:
                            if element.type not in {"spread_element", "comment"}:
                                self.push(unwrap_parens(element), Expectation.FUNCTION)
                    else:
                        self.push(arg0, Expectation.FUNCTION)
                self.push(arg1, Expectation.CALLED_FUNCTION)
            elif match("createStore", name) and arg0 is not None and arg0.type == "object":
                for member in arg0.named_children:
                    if member.type == "method_definition" and any(c.type == "get" for c in member.children):
                        self.push(member, Expectation.FUNCTION)
            elif match("runWithOwner", name):
                if arg1 is not None and self._runs_in_tracked_owner(arg0):
                    self.push(arg1, Expectation.FUNCTION)
            elif self.is_reactive_hook(name):
                for arg in args:
                    self.permissively_track(arg)

        elif callee.type == "member_expression":
            prop = callee.child_by_field_name("property")
            prop_name = node_text(prop) if prop is not None else ""
            if prop_name == "addEventListener" and len(args) >= 2:
                self.push(arg1, Expectation.CALLED_FUNCTION)
            elif prop_name and self.is_reactive_hook(prop_name):
                for arg in args:
                    self.permissively_track(arg)

    def _runs_in_tracked_owner(self, owner_arg: Optional[Node]) -> bool:
        """
        `runWithOwner(owner, fn)` tracks `fn` unless `owner` came from a
        `getOwner()` call made in a scope that is itself untracked. The program
        root frame always counts as untracked here.
        """
        if not is_identifier(owner_arg):
            return True
        variable = self.provider.variable_for(owner_arg)
        if variable is None or not variable.definitions:
            return True
        declarator = variable.definitions[0].node
        if declarator.type != "variable_declarator":
            return True
        init = unwrap_parens(declarator.child_by_field_name("value"))
        if init is None or init.type != "call_expression":
            return True
        init_callee = call_callee(init)
        if not is_identifier(init_callee) or not self.imports.match("getOwner", node_text(init_callee)):
            return True

        owner_function = find_parent(declarator, is_program_or_function_node)
        index = self.stack.index_of(owner_function)
        if index == 0:
            return False
        if index >= 1:
            enclosing = self.stack.frames[index - 1]
            return any(
                entry.expectation is Expectation.FUNCTION and same_node(entry.node, owner_function)
                for entry in enclosing.tracked_scopes
            )
        return True

    def classify_declarator(self, node: Node) -> None:
        init = unwrap_parens(node.child_by_field_name("value"))
        if init is None or init.type != "call_expression":
            return
        callee = call_callee(init)
        if not is_identifier(callee) or not self.imports.match(primitives.REACTION_FACTORIES, node_text(callee)):
            return
        name_node = node.child_by_field_name("name")
        track = self.provider.variable_for(name_node) if is_identifier(name_node) else None
        if track is not None:
            for reference in track.references:
                if reference.is_init or not reference.is_read_only:
                    continue
                parent = logical_parent(reference.identifier)
                if parent is not None and parent.type == "call_expression" and same_node(
                    call_callee(parent), reference.identifier
                ):
                    call_args = call_arguments(parent)
                    if call_args:
                        self.push(call_args[0], Expectation.FUNCTION)
        init_args = call_arguments(init)
        if init_args and is_function_node(init_args[0]):
            self.push(init_args[0], Expectation.CALLED_FUNCTION)

    def classify_assignment(self, node: Node) -> None:
        left = unwrap_parens(node.child_by_field_name("left"))
        right = unwrap_parens(node.child_by_field_name("right"))
        if left is None or left.type != "member_expression" or not is_function_node(right):
            return
        prop = left.child_by_field_name("property")
        if prop is not None and primitives.DOM_EVENT_PROPERTY.match(node_text(prop)):
            self.push(right, Expectation.CALLED_FUNCTION)

    def classify_tagged_template(self, node: Node) -> None:
        template = node.child_by_field_name("arguments")
        if template is None:
            return
        for substitution in template.named_children:
            if substitution.type != "template_substitution":
                continue
            expression = unwrap_parens(
                next((c for c in substitution.named_children if c.type != "comment"), None)
            )
            if not is_function_node(expression):
                continue
            self.push(expression, Expectation.CALLED_FUNCTION)
            for param in function_params(expression):
                if is_identifier(param) and primitives.is_props_name(node_text(param)):
                    variable = self.provider.variable_for(param)
                    if variable is not None:
                        self.registry.push_props(variable, self.stack.current().node)


def tracked_entries_for(stack: ScopeStack, node: Node, expectation: Expectation) -> List[TrackedScopeEntry]:
    """Entries with `expectation` that point exactly at `node`, in any live frame."""
    return [
        entry
        for frame in stack.frames
        for entry in frame.tracked_scopes
        if entry.expectation is expectation and same_node(entry.node, node)
    ]
