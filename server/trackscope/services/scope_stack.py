from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from tree_sitter import Node

from trackscope.services.scopes import Reference
from trackscope.services.syntax import (
    find_parent,
    is_function_node,
    is_program_or_function_node,
    same_node,
)

logger = logging.getLogger(__name__)


class ReactivityInvariantError(RuntimeError):
    """The analyzer reached a state its own bookkeeping rules out."""


class ScopeStackError(ReactivityInvariantError):
    pass


class Expectation(str, Enum):
    FUNCTION = "function"
    CALLED_FUNCTION = "called-function"
    EXPRESSION = "expression"


@dataclass(frozen=True)
class TrackedScopeEntry:
    node: Node
    expectation: Expectation


@dataclass
class ScopeFrame:
    node: Node
    tracked_scopes: List[TrackedScopeEntry] = field(default_factory=list)
    # function node id -> function node
    unnamed_derived_signals: Dict[int, Node] = field(default_factory=dict)
    has_markup: bool = False


class ScopeStack:
    """
    One frame per function/program nesting level currently being walked.

    Frames are addressed by position; `_positions` maps a scope node id to its
    index so declaration-scope comparisons are integer comparisons.
    """

    def __init__(self):
        self.frames: List[ScopeFrame] = []
        self._positions: Dict[int, int] = {}
        # Functions that run within their caller's turn and get no frame.
        self.sync_callbacks: Set[int] = set()

    def __len__(self) -> int:
        return len(self.frames)

    def enter(self, node: Node) -> ScopeFrame:
        frame = ScopeFrame(node=node)
        self._positions[node.id] = len(self.frames)
        self.frames.append(frame)
        return frame

    def exit(self, node: Node) -> ScopeFrame:
        if not self.frames:
            raise ScopeStackError("scope stack underflow")
        frame = self.frames[-1]
        if not same_node(frame.node, node):
            raise ScopeStackError(
                f"exiting {node.type} at {node.start_point.row + 1}:{node.start_point.column} "
                f"but the innermost frame belongs to {frame.node.type}"
            )
        self.frames.pop()
        del self._positions[node.id]
        return frame

    def current(self) -> ScopeFrame:
        if not self.frames:
            raise ScopeStackError("no active scope")
        return self.frames[-1]

    def parent(self) -> Optional[ScopeFrame]:
        return self.frames[-2] if len(self.frames) >= 2 else None

    def index_of(self, node: Optional[Node]) -> int:
        if node is None:
            return -1
        return self._positions.get(node.id, -1)

    def mark_sync_callback(self, node: Optional[Node]) -> None:
        if is_function_node(node):
            self.sync_callbacks.add(node.id)

    def is_sync_callback(self, node: Optional[Node]) -> bool:
        return node is not None and node.id in self.sync_callbacks

    def find_deepest_declaration_scope(self, a: Node, b: Node) -> Node:
        """Return whichever of two open scope nodes sits deeper on the stack."""
        pos_a = self.index_of(a)
        pos_b = self.index_of(b)
        if pos_a < 0 or pos_b < 0:
            missing = a if pos_a < 0 else b
            raise ScopeStackError(
                f"{missing.type} at {missing.start_point.row + 1}:{missing.start_point.column} "
                "is not on the scope stack; cannot merge declaration scopes"
            )
        return a if pos_a >= pos_b else b

    def owning_scope(self, identifier: Node) -> Optional[Node]:
        """Nearest enclosing function or program, skipping synchronous callbacks."""
        owner = find_parent(identifier, is_program_or_function_node)
        while is_function_node(owner) and self.is_sync_callback(owner):
            owner = find_parent(owner, is_program_or_function_node)
        return owner

    def is_reference_in_current_scope(self, reference: Reference) -> bool:
        return same_node(self.owning_scope(reference.identifier), self.current().node)
