from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from tree_sitter import Node

from trackscope.models import Diagnostic, TextEdit
from trackscope.services.syntax import SourceSpan, span_of


class MessageKind(str, Enum):
    ILLEGAL_MUTATION = "illegal-mutation"
    UNTRACKED_READ = "untracked-read"
    NEEDS_FUNCTION_WRAPPER = "needs-function-wrapper"
    BAD_CALL_CONTEXT = "bad-call-context"
    UNTRACKED_DERIVED_FUNCTION = "untracked-derived-function"
    DISALLOWED_ASYNC_TRACKED_SCOPE = "disallowed-async-tracked-scope"
    DECLARATION_SHAPE_ADVISORY = "declaration-shape-advisory"


class BadCallContext(str, Enum):
    TEMPLATE_INTERPOLATION = "template-interpolation"
    ARITHMETIC_OR_COMPARISON = "arithmetic-or-comparison"
    UNARY = "unary"
    COMPUTED_PROPERTY_KEY = "computed-property-key"
    UNWRAPPED_MARKUP_USAGE = "unwrapped-markup-usage"
    TRACKED_SCOPE_RETURN = "tracked-scope-return"

    @property
    def where(self) -> str:
        return _WHERE[self]


_WHERE = {
    BadCallContext.TEMPLATE_INTERPOLATION: "template literals",
    BadCallContext.ARITHMETIC_OR_COMPARISON: "arithmetic or comparisons",
    BadCallContext.UNARY: "unary expressions",
    BadCallContext.COMPUTED_PROPERTY_KEY: "property accesses",
    BadCallContext.UNWRAPPED_MARKUP_USAGE: "JSX",
    BadCallContext.TRACKED_SCOPE_RETURN: "the return value of a tracked scope",
}

# (kind, variant) -> message template. A None variant is the default.
MESSAGES: Dict[tuple, str] = {
    (MessageKind.ILLEGAL_MUTATION, None): (
        "The reactive variable '{name}' should not be reassigned or altered directly."
    ),
    (MessageKind.UNTRACKED_READ, None): (
        "The reactive variable '{name}' should be used within JSX, a tracked scope (like "
        "createEffect), or inside an event handler function, or else changes will be ignored."
    ),
    (MessageKind.NEEDS_FUNCTION_WRAPPER, None): (
        "The reactive variable '{name}' should be wrapped in a function for reactivity. This "
        "includes event handler bindings on native elements, which are not reactive like other "
        "JSX props."
    ),
    (MessageKind.BAD_CALL_CONTEXT, None): (
        "The reactive variable '{name}' should be called as a function when used in {where}."
    ),
    (MessageKind.UNTRACKED_DERIVED_FUNCTION, "unnamed"): (
        "This function should be passed to a tracked scope (like createEffect) or an event "
        "handler because it contains reactivity, or else changes will be ignored."
    ),
    (MessageKind.UNTRACKED_DERIVED_FUNCTION, "named"): (
        "The function '{name}' contains reactivity and should be called within JSX, a tracked "
        "scope (like createEffect), or an event handler, or else changes will be ignored."
    ),
    (MessageKind.DISALLOWED_ASYNC_TRACKED_SCOPE, None): (
        "This tracked scope should not be async. Reactivity is only tracked synchronously."
    ),
    (MessageKind.DECLARATION_SHAPE_ADVISORY, "destructure"): (
        "For proper analysis, array destructuring should be used to capture the {nth}result of "
        "this function call."
    ),
    (MessageKind.DECLARATION_SHAPE_ADVISORY, "assign"): (
        "For proper analysis, a variable should be used to capture the result of this function "
        "call."
    ),
}


def render_message(kind: MessageKind, variant: Optional[str], data: Dict[str, str]) -> str:
    template = MESSAGES.get((kind, variant)) or MESSAGES[(kind, None)]
    return template.format(**data)


def call_suffix_fix(identifier: Node) -> TextEdit:
    """Append `()` right after an identifier."""
    return TextEdit(start_byte=identifier.end_byte, end_byte=identifier.end_byte, replacement="()")


class DiagnosticSink:
    """Collects findings for one analysis run and renders their messages."""

    def __init__(self):
        self._diagnostics: List[Diagnostic] = []
        self._seen: set = set()

    def report(
        self,
        kind: MessageKind,
        at: Union[Node, SourceSpan],
        *,
        variant: Optional[str] = None,
        data: Optional[Dict[str, str]] = None,
        fixes: Iterable[TextEdit] = (),
    ) -> Optional[Diagnostic]:
        span = at if isinstance(at, SourceSpan) else span_of(at)
        data = dict(data or {})
        # The same finding can be reached twice through different frames.
        key = (kind, variant, span.start_byte, span.end_byte)
        if key in self._seen:
            return None
        self._seen.add(key)

        diagnostic = Diagnostic(
            kind=kind.value,
            variant=variant,
            message=render_message(kind, variant, data),
            line=span.start_line,
            column=span.start_column,
            end_line=span.end_line,
            end_column=span.end_column,
            start_byte=span.start_byte,
            end_byte=span.end_byte,
            data=data,
            fixes=list(fixes),
        )
        self._diagnostics.append(diagnostic)
        return diagnostic

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return sorted(self._diagnostics, key=lambda d: (d.start_byte, d.end_byte, d.kind, d.variant or ""))

    def __len__(self) -> int:
        return len(self._diagnostics)


def apply_edits(source: str, edits: Iterable[TextEdit]) -> str:
    """
    Apply byte-offset edits to `source`. Edits that overlap one already applied
    are skipped.
    """
    raw = source.encode("utf-8")
    ordered = sorted(edits, key=lambda e: (e.start_byte, e.end_byte))
    out: List[bytes] = []
    cursor = 0
    for edit in ordered:
        if edit.start_byte < cursor or edit.end_byte < edit.start_byte or edit.end_byte > len(raw):
            continue
        out.append(raw[cursor:edit.start_byte])
        out.append(edit.replacement.encode("utf-8"))
        cursor = edit.end_byte
    out.append(raw[cursor:])
    return b"".join(out).decode("utf-8")
