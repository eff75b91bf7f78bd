from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Tuple, assert_never

from tree_sitter import Node

from trackscope.models import Diagnostic
from trackscope.services import primitives
from trackscope.services.bindings import BindingRegistry
from trackscope.services.diagnostics import DiagnosticSink, MessageKind
from trackscope.services.imports import ImportAliasTable
from trackscope.services.scope_stack import ScopeStack, ScopeStackError
from trackscope.services.scopes import ScopeProvider, Variable, nth_pattern_element
from trackscope.services.syntax import (
    NodeKind,
    call_arguments,
    call_callee,
    enclosing_call,
    function_name,
    function_params,
    ignore_transparent_wrappers,
    is_async_function,
    is_function_node,
    is_identifier,
    kind_of,
    logical_parent,
    markup_element_name,
    node_text,
    unwrap_parens,
)
from trackscope.services.tracked_scopes import TrackedScopeClassifier
from trackscope.services.validator import UsageValidator

logger = logging.getLogger(__name__)


class ReactivityAnalyzer:
    """
    Single depth-first pass over one file.

    Enter events register bindings, synchronous callbacks and tracked scopes;
    leaving a function or the program drains that frame's references through
    the validator. An analyzer is good for exactly one run.
    """

    def __init__(self, provider: ScopeProvider, custom_reactive_functions: Iterable[str] = ()):
        self.provider = provider
        self.sink = DiagnosticSink()
        self.stack = ScopeStack()
        self.registry = BindingRegistry(self.stack)
        self.imports = ImportAliasTable()
        self.classifier = TrackedScopeClassifier(
            self.stack,
            self.registry,
            self.imports,
            provider,
            self.sink,
            custom_reactive_functions,
        )
        self.validator = UsageValidator(self.stack, self.registry, provider, self.sink)
        self._done = False

    def run(self) -> List[Diagnostic]:
        if self._done:
            raise RuntimeError("ReactivityAnalyzer instances are single-use")
        self._done = True
        self._walk(self.provider.root)
        if len(self.stack):
            raise ScopeStackError(f"{len(self.stack)} frame(s) left open after the walk")
        pending = {name: n for name, n in self.registry.pending_counts().items() if n}
        if pending:
            logger.debug("references outside any walked scope: %s", pending)
        return self.sink.diagnostics

    def _walk(self, root: Node) -> None:
        # Explicit stack: long operator chains nest deeper than the recursion limit.
        pending: List[Tuple[Node, NodeKind, bool]] = [(root, self.provider.kind(root), False)]
        while pending:
            node, kind, leaving = pending.pop()
            if leaving:
                self._exit(node, kind)
                continue
            self._enter(node, kind)
            pending.append((node, kind, True))
            pending.extend((child, self.provider.kind(child), False) for child in reversed(node.children))

    def _enter(self, node: Node, kind: NodeKind) -> None:
        match kind:
            case NodeKind.PROGRAM:
                self.stack.enter(node)
            case NodeKind.FUNCTION:
                self._on_function_enter(node)
                self._check_list_callback(node)
            case NodeKind.IMPORT:
                self.imports.record(node)
            case NodeKind.JSX_EXPRESSION:
                self.classifier.classify_markup_expression(node)
            case NodeKind.JSX_ELEMENT:
                if len(self.stack):
                    self.stack.current().has_markup = True
            case NodeKind.CALL:
                self.classifier.classify_call(node)
                self._check_sync_callbacks(node)
                parent = node.parent and ignore_transparent_wrappers(node.parent, up=True)
                if parent is None or parent.type not in {
                    "assignment_expression",
                    "augmented_assignment_expression",
                    "variable_declarator",
                }:
                    self._check_reactive_assignment(None, node)
            case NodeKind.TAGGED_TEMPLATE:
                self.classifier.classify_tagged_template(node)
            case NodeKind.NEW:
                self.classifier.classify_new(node)
            case NodeKind.VARIABLE_DECLARATOR:
                value = node.child_by_field_name("value")
                if value is not None:
                    self._check_reactive_assignment(node.child_by_field_name("name"), value)
                    self.classifier.classify_declarator(node)
            case NodeKind.ASSIGNMENT:
                left = unwrap_parens(node.child_by_field_name("left"))
                right = node.child_by_field_name("right")
                if left is not None and right is not None and left.type not in {
                    "member_expression",
                    "subscript_expression",
                }:
                    self._check_reactive_assignment(left, right)
                self.classifier.classify_assignment(node)
            case NodeKind.OTHER:
                pass
            case _:
                assert_never(kind)

    def _exit(self, node: Node, kind: NodeKind) -> None:
        match kind:
            case NodeKind.PROGRAM | NodeKind.FUNCTION:
                self._on_function_exit(node)
            case (
                NodeKind.IMPORT
                | NodeKind.JSX_EXPRESSION
                | NodeKind.JSX_ELEMENT
                | NodeKind.CALL
                | NodeKind.TAGGED_TEMPLATE
                | NodeKind.NEW
                | NodeKind.VARIABLE_DECLARATOR
                | NodeKind.ASSIGNMENT
                | NodeKind.OTHER
            ):
                pass
            case _:
                assert_never(kind)

    # --- frames ---

    def _on_function_enter(self, node: Node) -> None:
        if self.stack.is_sync_callback(node):
            return
        self._mark_props_on_condition(node, lambda param: primitives.is_props_name(node_text(param)))
        self.stack.enter(node)

    def _on_function_exit(self, node: Node) -> None:
        if is_function_node(node):
            self._mark_props_on_condition(node, lambda param: self._is_component_props(node, param))
            if self.stack.is_sync_callback(node):
                return
        self.validator.validate_frame()
        frame = self.stack.exit(node)
        logger.debug(
            "left %s at line %d with %d tracked scope(s)",
            node.type,
            node.start_point.row + 1,
            len(frame.tracked_scopes),
        )

    def _is_component_props(self, node: Node, param: Node) -> bool:
        # A capitalized function rendering markup is a component; its only
        # parameter is props whatever it is called.
        if primitives.is_props_name(node_text(param)) or not self.stack.current().has_markup:
            return False
        name = function_name(node)
        return bool(name) and not primitives.is_dom_element_name(name)

    def _mark_props_on_condition(self, node: Node, condition: Callable[[Node], bool]) -> None:
        params = function_params(node)
        if len(params) != 1 or not is_identifier(params[0]):
            return
        parent = logical_parent(node)
        # Render props and template callbacks are not components.
        if parent is not None and parent.type in {"jsx_expression", "template_substitution"}:
            return
        if condition(params[0]):
            variable = self.provider.variable_for(params[0])
            if variable is not None:
                # A synchronous callback has no frame; its reads belong to the caller's.
                scope = self.stack.current().node if self.stack.is_sync_callback(node) else node
                self.registry.push_props(variable, scope)

    def _check_list_callback(self, node: Node) -> None:
        """`<For>` index and `<Index>` item parameters are signals."""
        container = logical_parent(node)
        if container is None or container.type != "jsx_expression":
            return
        element = container.parent
        if element is None or element.type != "jsx_element":
            return
        tag = markup_element_name(element.child_by_field_name("open_tag"))
        if not is_identifier(tag):
            return
        tag_name = node_text(tag)
        params = function_params(node)
        if self.imports.match("For", tag_name) and len(params) == 2 and is_identifier(params[1]):
            self._push_signal_param(params[1])
        elif self.imports.match("Index", tag_name) and len(params) >= 1 and is_identifier(params[0]):
            self._push_signal_param(params[0])

    def _push_signal_param(self, param: Node) -> None:
        variable = self.provider.variable_for(param)
        if variable is not None:
            self.registry.push_signal(variable, self.stack.current().node)

    # --- synchronous callbacks ---

    def _check_sync_callbacks(self, node: Node) -> None:
        callee = call_callee(node)
        args = call_arguments(node)
        if callee is None:
            return

        if len(args) == 1 and is_function_node(args[0]) and not is_async_function(args[0]):
            if is_identifier(callee) and self.imports.match(primitives.SYNC_WRAPPER_PRIMITIVES, node_text(callee)):
                self.stack.mark_sync_callback(args[0])
            elif callee.type == "member_expression":
                receiver = unwrap_parens(callee.child_by_field_name("object"))
                prop = callee.child_by_field_name("property")
                if (
                    receiver is not None
                    and receiver.type != "object"
                    and prop is not None
                    and node_text(prop) in primitives.ARRAY_ITERATION_METHODS
                ):
                    self.stack.mark_sync_callback(args[0])

        if is_identifier(callee):
            name = node_text(callee)
            parent = logical_parent(node)
            if self.imports.match(primitives.SETTER_FACTORIES, name) and parent is not None and parent.type == "variable_declarator":
                setter = self._nth_destructured(parent.child_by_field_name("name"), 1)
                if setter is not None:
                    self._mark_setter_callbacks(setter)
            elif self.imports.match(("mapArray", "indexArray"), name):
                if len(args) > 1 and is_function_node(args[1]):
                    self.stack.mark_sync_callback(args[1])

        # Immediately invoked function expressions.
        if is_function_node(callee):
            self.stack.mark_sync_callback(callee)

    def _mark_setter_callbacks(self, setter: Variable) -> None:
        """`setCount(c => c + 1)`: the updater runs synchronously."""
        for reference in setter.references:
            if reference.is_init or not reference.is_read:
                continue
            call = enclosing_call(reference.identifier)
            if call is None:
                continue
            for arg in call_arguments(call):
                if is_function_node(arg) and not is_async_function(arg):
                    self.stack.mark_sync_callback(arg)

    # --- bindings from factory calls ---

    def _nth_destructured(self, pattern: Optional[Node], n: int) -> Optional[Variable]:
        element = nth_pattern_element(pattern, n)
        if is_identifier(element):
            return self.provider.variable_for(element)
        return None

    def _returned(self, target: Optional[Node]) -> Optional[Variable]:
        if is_identifier(target):
            return self.provider.variable_for(target)
        return None

    def _warn_should_destructure(self, at: Node, nth: Optional[str] = None) -> None:
        self.sink.report(
            MessageKind.DECLARATION_SHAPE_ADVISORY,
            at,
            variant="destructure",
            data={"nth": f"{nth} " if nth else ""},
        )

    def _warn_should_assign(self, at: Node) -> None:
        self.sink.report(MessageKind.DECLARATION_SHAPE_ADVISORY, at, variant="assign")

    def _check_reactive_assignment(self, target: Optional[Node], init: Node) -> None:
        init = ignore_transparent_wrappers(init)
        if kind_of(init) is not NodeKind.CALL:
            return
        callee = call_callee(init)
        if not is_identifier(callee):
            return
        name = node_text(callee)
        match = self.imports.match
        scope = self.stack.current().node

        if match(primitives.SIGNAL_FACTORIES, name):
            signal = self._nth_destructured(target, 0)
            if signal is not None:
                self.registry.push_signal(signal, scope)
            else:
                self._warn_should_destructure(target or init, "first")
        elif match(primitives.MEMO_FACTORIES, name):
            memo = self._returned(target)
            if memo is not None:
                self.registry.push_signal(memo, scope)
            else:
                self._warn_should_assign(target or init)
        elif match("createStore", name):
            store = self._nth_destructured(target, 0)
            if store is not None:
                self.registry.push_props(store, scope)
            else:
                self._warn_should_destructure(target or init, "first")
        elif match("mergeProps", name):
            merged = self._returned(target)
            if merged is not None:
                self.registry.push_props(merged, scope)
            else:
                self._warn_should_assign(target or init)
        elif match("splitProps", name):
            if target is not None and target.type == "array_pattern":
                parts = [
                    self.provider.variable_for(el)
                    for el in target.named_children
                    if is_identifier(el)
                ]
                parts = [v for v in parts if v is not None]
                if not parts:
                    self._warn_should_destructure(target)
                for variable in parts:
                    self.registry.push_props(variable, scope)
            else:
                whole = self._returned(target)
                if whole is not None:
                    self.registry.push_props(whole, scope)
        elif match("createResource", name):
            resource = self._nth_destructured(target, 0)
            if resource is not None:
                self.registry.push_props(resource, scope)
        elif match("createMutable", name):
            mutable = self._returned(target)
            if mutable is not None:
                self.registry.push_props(mutable, scope)
        elif match("mapArray", name):
            args = call_arguments(init)
            if len(args) > 1 and is_function_node(args[1]):
                params = function_params(args[1])
                if len(params) >= 2 and is_identifier(params[1]):
                    self._push_signal_param(params[1])
        elif match("indexArray", name):
            args = call_arguments(init)
            if len(args) > 1 and is_function_node(args[1]):
                params = function_params(args[1])
                if len(params) >= 1 and is_identifier(params[0]):
                    self._push_signal_param(params[0])
