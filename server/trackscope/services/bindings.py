from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from tree_sitter import Node

from trackscope.services.scope_stack import ScopeStack
from trackscope.services.scopes import Reference, Variable

logger = logging.getLogger(__name__)


class BindingKind(str, Enum):
    SIGNAL = "signal"
    DERIVED_SIGNAL = "derivedSignal"
    PROPS = "propsOrStore"


@dataclass(eq=False)
class Binding:
    kind: BindingKind
    variable: Variable
    declaration_scope: Node
    references: List[Reference] = field(default_factory=list)
    # Where to report findings about the binding as a whole.
    origin: Optional[Node] = None

    @property
    def name(self) -> str:
        return self.variable.name


@dataclass(frozen=True)
class ScopedReference:
    reference: Reference
    binding: Binding

    @property
    def declaration_scope(self) -> Node:
        return self.binding.declaration_scope


class BindingRegistry:
    """
    Live signal and props bindings plus the references still waiting to be
    checked.

    References are drained frame by frame as scopes exit; a binding is dropped
    once it has none left. `history` keeps every consumed reference so the
    totals can be audited after a run.
    """

    def __init__(self, stack: ScopeStack):
        self.stack = stack
        self.signals: List[Binding] = []
        self.props: List[Binding] = []
        self.registered: List[Tuple[Binding, Tuple[Reference, ...]]] = []
        self.history: List[ScopedReference] = []

    def _register(self, bucket: List[Binding], kind: BindingKind, variable: Variable, scope: Optional[Node]) -> Binding:
        binding = Binding(
            kind=kind,
            variable=variable,
            declaration_scope=scope if scope is not None else self.stack.current().node,
            references=[r for r in variable.references if not r.is_init],
            origin=variable.definitions[0].name_node if variable.definitions else None,
        )
        bucket.append(binding)
        self.registered.append((binding, tuple(binding.references)))
        logger.debug(
            "registered %s %r with %d reference(s)", kind.value, variable.name, len(binding.references)
        )
        return binding

    def push_signal(self, variable: Variable, scope: Optional[Node] = None) -> Binding:
        return self._register(self.signals, BindingKind.SIGNAL, variable, scope)

    def push_unique_signal(self, variable: Variable, scope: Node) -> Binding:
        """
        Register a derived signal, or widen an existing registration.

        A derived signal is declared at the scope of the deepest signal it
        reads, not where the function itself lives.
        """
        for binding in self.signals:
            if binding.variable is variable:
                binding.declaration_scope = self.stack.find_deepest_declaration_scope(
                    binding.declaration_scope, scope
                )
                return binding
        return self._register(self.signals, BindingKind.DERIVED_SIGNAL, variable, scope)

    def push_props(self, variable: Variable, scope: Optional[Node] = None) -> Binding:
        return self._register(self.props, BindingKind.PROPS, variable, scope)

    def consume_signal_references_in_scope(self) -> List[ScopedReference]:
        consumed = self._consume(self.signals)
        self.signals = [b for b in self.signals if b.references]
        return consumed

    def consume_props_references_in_scope(self) -> List[ScopedReference]:
        consumed = self._consume(self.props)
        self.props = [b for b in self.props if b.references]
        return consumed

    def _consume(self, bindings: List[Binding]) -> List[ScopedReference]:
        consumed: List[ScopedReference] = []
        for binding in bindings:
            in_scope: List[Reference] = []
            not_in_scope: List[Reference] = []
            for reference in binding.references:
                if self.stack.is_reference_in_current_scope(reference):
                    in_scope.append(reference)
                else:
                    not_in_scope.append(reference)
            consumed.extend(ScopedReference(reference=r, binding=binding) for r in in_scope)
            binding.references = not_in_scope
        self.history.extend(consumed)
        return consumed

    def live(self) -> Iterator[Binding]:
        yield from self.signals
        yield from self.props

    def pending_counts(self) -> Dict[str, int]:
        return {b.name: len(b.references) for b in self.live()}
