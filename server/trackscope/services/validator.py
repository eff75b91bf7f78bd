from __future__ import annotations

import logging
from typing import Optional

from tree_sitter import Node

from trackscope.services import primitives
from trackscope.services.bindings import BindingKind, BindingRegistry, ScopedReference
from trackscope.services.diagnostics import (
    BadCallContext,
    DiagnosticSink,
    MessageKind,
    call_suffix_fix,
)
from trackscope.services.scope_stack import Expectation, ScopeStack, ScopeStackError
from trackscope.services.scopes import ScopeProvider
from trackscope.services.syntax import (
    enclosing_call,
    find_parent,
    function_head_span,
    is_function_node,
    is_identifier,
    is_markup_element,
    logical_parent,
    node_text,
    same_node,
    unwrap_parens,
)
from trackscope.services.tracked_scopes import (
    MEMBER_ACCESS_TYPES,
    is_dom_element_tag,
    is_within,
    match_tracked_scope,
    tracked_entries_for,
)

logger = logging.getLogger(__name__)

_FUNCTION_EXPECTATIONS = (Expectation.FUNCTION, Expectation.CALLED_FUNCTION)


def _member_parent(identifier: Node) -> Optional[Node]:
    """The member access `identifier` is the object of, if any."""
    parent = logical_parent(identifier)
    if parent is not None and parent.type in MEMBER_ACCESS_TYPES:
        if same_node(unwrap_parens(parent.child_by_field_name("object")), identifier):
            return parent
    return None


def _outermost_member(identifier: Node) -> Optional[Node]:
    member = _member_parent(identifier)
    if member is None:
        return None
    while True:
        parent = logical_parent(member)
        if parent is None or parent.type not in MEMBER_ACCESS_TYPES:
            return member
        if not same_node(unwrap_parens(parent.child_by_field_name("object")), member):
            return member
        member = parent


class UsageValidator:
    """
    Checks the references drained from the registry when a frame exits.

    Reads that cross a closure boundary are not judged here; the function
    that crossed it becomes a derived signal and is judged one level out.
    """

    def __init__(
        self,
        stack: ScopeStack,
        registry: BindingRegistry,
        provider: ScopeProvider,
        sink: DiagnosticSink,
    ):
        self.stack = stack
        self.registry = registry
        self.provider = provider
        self.sink = sink

    def validate_frame(self) -> None:
        for scoped in self.registry.consume_signal_references_in_scope():
            self._check_signal_reference(scoped)
        for scoped in self.registry.consume_props_references_in_scope():
            self._check_props_reference(scoped)

        frame = self.stack.current()
        for function in frame.unnamed_derived_signals.values():
            if not any(match_tracked_scope(e, function, frame.node) for e in frame.tracked_scopes):
                self.sink.report(
                    MessageKind.UNTRACKED_DERIVED_FUNCTION,
                    function_head_span(function),
                    variant="unnamed",
                )

    # --- signals ---

    def _check_signal_reference(self, scoped: ScopedReference) -> None:
        reference = scoped.reference
        identifier = reference.identifier
        if reference.is_write:
            self.sink.report(MessageKind.ILLEGAL_MUTATION, identifier, data={"name": node_text(identifier)})
            return
        if not is_identifier(identifier):
            return

        parent = logical_parent(identifier)
        grandparent = logical_parent(parent) if parent is not None else None
        if enclosing_call(identifier) is not None or (
            parent is not None and parent.type == "array" and grandparent is not None
            and grandparent.type == "arguments" and grandparent.parent is not None
            and grandparent.parent.type == "call_expression"
        ):
            self._handle_tracked_scopes(identifier, scoped)
            return

        context = self._bad_call_context(identifier, parent, grandparent)
        if context is not None:
            self.sink.report(
                MessageKind.BAD_CALL_CONTEXT,
                identifier,
                variant=context.value,
                data={"name": node_text(identifier), "where": context.where},
                fixes=[call_suffix_fix(identifier)],
            )

    def _bad_call_context(
        self, identifier: Node, parent: Optional[Node], grandparent: Optional[Node]
    ) -> Optional[BadCallContext]:
        if parent is None:
            return None
        if parent.type == "template_substitution":
            return BadCallContext.TEMPLATE_INTERPOLATION
        if parent.type == "binary_expression":
            operator = parent.child_by_field_name("operator")
            if operator is not None and operator.type in primitives.COERCING_BINARY_OPERATORS:
                return BadCallContext.ARITHMETIC_OR_COMPARISON
            return None
        if parent.type == "unary_expression":
            operator = parent.child_by_field_name("operator")
            if operator is not None and operator.type in primitives.COERCING_UNARY_OPERATORS:
                return BadCallContext.UNARY
            return None
        if parent.type == "subscript_expression":
            if same_node(unwrap_parens(parent.child_by_field_name("index")), identifier):
                return BadCallContext.COMPUTED_PROPERTY_KEY
            return None
        if parent.type == "jsx_expression":
            frame = self.stack.current()
            if any(
                e.expectation in _FUNCTION_EXPECTATIONS and same_node(e.node, identifier)
                for e in frame.tracked_scopes
            ):
                return None
            if is_markup_element(grandparent):
                return BadCallContext.UNWRAPPED_MARKUP_USAGE
            if (
                grandparent is not None
                and grandparent.type == "jsx_attribute"
                and is_dom_element_tag(grandparent.parent)
            ):
                return BadCallContext.UNWRAPPED_MARKUP_USAGE
            return None
        if self._is_tracked_scope_result(identifier, parent):
            return BadCallContext.TRACKED_SCOPE_RETURN
        return None

    def _is_tracked_scope_result(self, identifier: Node, parent: Node) -> bool:
        """`createEffect(() => count)`: the signal itself is returned, not its value."""
        if parent.type == "arrow_function":
            if not same_node(unwrap_parens(parent.child_by_field_name("body")), identifier):
                return False
            function = parent
        elif parent.type == "return_statement":
            function = find_parent(parent, is_function_node)
        else:
            return False
        return function is not None and bool(tracked_entries_for(self.stack, function, Expectation.FUNCTION))

    # --- props and stores ---

    def _check_props_reference(self, scoped: ScopedReference) -> None:
        reference = scoped.reference
        identifier = reference.identifier
        name = node_text(identifier)
        if reference.is_write:
            self.sink.report(MessageKind.ILLEGAL_MUTATION, identifier, data={"name": name})
            return

        member = _member_parent(identifier)
        if member is not None:
            outer = logical_parent(member)
            if (
                outer is not None
                and outer.type in {"assignment_expression", "augmented_assignment_expression"}
                and same_node(unwrap_parens(outer.child_by_field_name("left")), member)
            ):
                self.sink.report(MessageKind.ILLEGAL_MUTATION, identifier, data={"name": name})
                return
            prop = member.child_by_field_name("property")
            if (
                member.type == "member_expression"
                and prop is not None
                and primitives.NON_REACTIVE_PROPERTY.match(node_text(prop))
            ):
                return
            self._handle_tracked_scopes(identifier, scoped)
            return

        parent = logical_parent(identifier)
        if parent is not None and parent.type in {"assignment_expression", "variable_declarator"}:
            self._report_untracked(identifier, scoped, MessageKind.UNTRACKED_READ, force=True)

    # --- tracked scope containment ---

    def _handle_tracked_scopes(self, identifier: Node, scoped: ScopedReference) -> None:
        frame = self.stack.current()
        if any(match_tracked_scope(e, identifier, frame.node) for e in frame.tracked_scopes):
            return
        in_expression = any(is_within(identifier, e.node, frame.node) for e in frame.tracked_scopes)

        if same_node(scoped.declaration_scope, frame.node):
            kind = MessageKind.NEEDS_FUNCTION_WRAPPER if in_expression else MessageKind.UNTRACKED_READ
            self._report_untracked(identifier, scoped, kind)
            return

        self._promote_to_derived_signal(frame.node, scoped.declaration_scope)

    def _report_untracked(
        self, identifier: Node, scoped: ScopedReference, kind: MessageKind, force: bool = False
    ) -> None:
        binding = scoped.binding
        if kind is MessageKind.UNTRACKED_READ and not force:
            if binding.kind is BindingKind.DERIVED_SIGNAL:
                self.sink.report(
                    MessageKind.UNTRACKED_DERIVED_FUNCTION,
                    binding.origin if binding.origin is not None else identifier,
                    variant="named",
                    data={"name": binding.name},
                )
                return
            # Reads at module level run once by nature; there is nothing to re-run.
            if self.stack.index_of(self.stack.current().node) == 0:
                return

        member = _outermost_member(identifier)
        call = enclosing_call(identifier)
        self.sink.report(
            kind,
            member if member is not None else call if call is not None else identifier,
            data={"name": node_text(member) if member is not None else node_text(identifier)},
        )

    def _promote_to_derived_signal(self, function: Node, declaration_scope: Node) -> None:
        parent_frame = self.stack.parent()
        if parent_frame is None or not is_function_node(function):
            raise ScopeStackError(
                f"reference escaped {function.type} with no enclosing frame to receive it"
            )

        variable = None
        owner = logical_parent(function)
        if function.type in {"function_declaration", "generator_function_declaration"}:
            declared = self.provider.declared_variables(function)
            variable = declared[0] if declared else None
        elif owner is not None and owner.type == "variable_declarator":
            declared = self.provider.declared_variables(owner)
            variable = declared[0] if declared else None
        elif (owner is not None and owner.type == "pair") or (
            function.type == "method_definition" and owner is not None and owner.type == "object"
        ):
            # Object members are reached through property access, not by name.
            return

        if variable is not None:
            self.registry.push_unique_signal(variable, declaration_scope)
            logger.debug("promoted %r to a derived signal", variable.name)
        else:
            parent_frame.unnamed_derived_signals[function.id] = function
