from __future__ import annotations

from enum import Enum
from pathlib import PurePath
from typing import List, NamedTuple, Optional, Protocol

import tree_sitter_typescript as tstypescript
from tree_sitter import Language, Node, Parser

from trackscope.config import LINTABLE_SUFFIXES, TSX_SUFFIXES

# Load TypeScript and TSX grammars
TYPESCRIPT_LANGUAGE = Language(tstypescript.language_typescript())
TSX_LANGUAGE = Language(tstypescript.language_tsx())


class SyntaxNode(Protocol):
    """
    The slice of a syntax-tree node the analyzer relies on.

    tree-sitter `Node` objects satisfy this structurally. `id` must be stable
    for the lifetime of the tree and unique per node, since every set and map
    in the analyzer is keyed by it.
    """

    id: int
    type: str
    parent: Optional["SyntaxNode"]
    children: List["SyntaxNode"]
    named_children: List["SyntaxNode"]
    start_byte: int
    end_byte: int
    text: bytes

    def child_by_field_name(self, name: str) -> Optional["SyntaxNode"]: ...


class NodeKind(Enum):
    """Closed set of node kinds the reactivity walker dispatches on."""

    PROGRAM = "program"
    FUNCTION = "function"
    IMPORT = "import"
    JSX_EXPRESSION = "jsx_expression"
    JSX_ELEMENT = "jsx_element"
    CALL = "call"
    TAGGED_TEMPLATE = "tagged_template"
    NEW = "new"
    VARIABLE_DECLARATOR = "variable_declarator"
    ASSIGNMENT = "assignment"
    OTHER = "other"


FUNCTION_NODE_TYPES = frozenset(
    {
        "function_declaration",
        "function_expression",
        # Older grammar releases call function expressions plain "function".
        "function",
        "arrow_function",
        "generator_function",
        "generator_function_declaration",
        "method_definition",
    }
)

# Nodes that only change typing, never the runtime value.
TRANSPARENT_WRAPPER_TYPES = frozenset(
    {"as_expression", "non_null_expression", "satisfies_expression"}
)

_SIMPLE_KINDS = {
    "program": NodeKind.PROGRAM,
    "import_statement": NodeKind.IMPORT,
    "jsx_expression": NodeKind.JSX_EXPRESSION,
    "jsx_element": NodeKind.JSX_ELEMENT,
    "jsx_self_closing_element": NodeKind.JSX_ELEMENT,
    "new_expression": NodeKind.NEW,
    "variable_declarator": NodeKind.VARIABLE_DECLARATOR,
    "assignment_expression": NodeKind.ASSIGNMENT,
}


class SourceSpan(NamedTuple):
    start_line: int  # 1-based
    start_column: int  # 0-based
    end_line: int
    end_column: int
    start_byte: int
    end_byte: int


def parser_for(filename: str) -> Parser:
    suffix = PurePath(filename).suffix.lower()
    if suffix in LINTABLE_SUFFIXES and suffix not in TSX_SUFFIXES:
        return Parser(TYPESCRIPT_LANGUAGE)
    # Everything else goes through the TSX grammar so that markup parses.
    return Parser(TSX_LANGUAGE)


def kind_of(node: Node) -> NodeKind:
    if node.type in FUNCTION_NODE_TYPES:
        return NodeKind.FUNCTION
    if node.type == "call_expression":
        args = node.child_by_field_name("arguments")
        if args is not None and args.type == "template_string":
            return NodeKind.TAGGED_TEMPLATE
        return NodeKind.CALL
    return _SIMPLE_KINDS.get(node.type, NodeKind.OTHER)


def node_text(node: Node) -> str:
    return node.text.decode("utf-8", errors="ignore")


def span_of(node: Node) -> SourceSpan:
    return SourceSpan(
        start_line=node.start_point.row + 1,
        start_column=node.start_point.column,
        end_line=node.end_point.row + 1,
        end_column=node.end_point.column,
        start_byte=node.start_byte,
        end_byte=node.end_byte,
    )


def is_function_node(node: Optional[Node]) -> bool:
    return node is not None and node.type in FUNCTION_NODE_TYPES


def is_program_or_function_node(node: Optional[Node]) -> bool:
    return node is not None and (node.type == "program" or node.type in FUNCTION_NODE_TYPES)


def is_markup_element(node: Optional[Node]) -> bool:
    return node is not None and node.type in {"jsx_element", "jsx_self_closing_element"}


def is_async_function(node: Node) -> bool:
    return is_function_node(node) and any(c.type == "async" for c in node.children)


def is_identifier(node: Optional[Node]) -> bool:
    return node is not None and node.type == "identifier"


def same_node(a: Optional[Node], b: Optional[Node]) -> bool:
    return a is not None and b is not None and a.id == b.id


def unwrap_parens(node: Optional[Node]) -> Optional[Node]:
    while node is not None and node.type == "parenthesized_expression":
        inner = [c for c in node.named_children if c.type != "comment"]
        if not inner:
            break
        node = inner[0]
    return node


def logical_parent(node: Node) -> Optional[Node]:
    """Parent of `node`, looking through parentheses."""
    parent = node.parent
    while parent is not None and parent.type == "parenthesized_expression":
        parent = parent.parent
    return parent


def ignore_transparent_wrappers(node: Node, up: bool = False) -> Node:
    """Step over TypeScript-only wrappers (and parentheses) around `node`."""
    while node.type in TRANSPARENT_WRAPPER_TYPES or node.type == "parenthesized_expression":
        if up:
            nxt = node.parent
        else:
            inner = [c for c in node.named_children if c.type != "comment"]
            nxt = inner[0] if inner else None
        if nxt is None:
            break
        node = nxt
    return node


def find_parent(node: Node, predicate) -> Optional[Node]:
    current = node.parent
    while current is not None:
        if predicate(current):
            return current
        current = current.parent
    return None


def named_args(node: Optional[Node]) -> List[Node]:
    if node is None:
        return []
    return [unwrap_parens(c) for c in node.named_children if c.type != "comment"]


def call_callee(call: Node) -> Optional[Node]:
    return unwrap_parens(call.child_by_field_name("function"))


def call_arguments(call: Node) -> List[Node]:
    """Arguments of a call or `new` expression, parentheses stripped."""
    args = call.child_by_field_name("arguments")
    if args is None or args.type == "template_string":
        return []
    return named_args(args)


def enclosing_call(node: Node) -> Optional[Node]:
    """
    The call expression `node` is the callee or a direct argument of.

    Tagged templates and `new` expressions are not calls here.
    """
    parent = logical_parent(node)
    if parent is None:
        return None
    if parent.type == "call_expression" and same_node(call_callee(parent), node):
        return parent
    if parent.type == "arguments":
        grandparent = parent.parent
        if grandparent is not None and grandparent.type == "call_expression":
            return grandparent
    return None


def function_params(node: Node) -> List[Node]:
    """
    One entry per declared parameter: the bound identifier for simple
    parameters, the parameter node itself for patterns, defaults and rests.
    """
    single = node.child_by_field_name("parameter")
    if single is not None:
        return [single]
    params = node.child_by_field_name("parameters")
    if params is None:
        return []
    out: List[Node] = []
    for param in params.named_children:
        if param.type in {"required_parameter", "optional_parameter"}:
            pattern = param.child_by_field_name("pattern")
            if param.child_by_field_name("value") is None and is_identifier(pattern):
                out.append(pattern)
            else:
                out.append(param)
        elif param.type == "comment":
            continue
        else:
            # Plain JavaScript parameters (identifier, patterns, rest).
            out.append(param)
    return out


def function_name(node: Node) -> Optional[str]:
    if node.type in {"function_declaration", "function_expression", "function", "generator_function_declaration"}:
        name_node = node.child_by_field_name("name")
        if name_node is not None:
            return node_text(name_node)
    parent = logical_parent(node)
    if parent is not None and parent.type == "variable_declarator":
        name_node = parent.child_by_field_name("name")
        if is_identifier(name_node):
            return node_text(name_node)
    return None


def function_head_span(node: Node) -> SourceSpan:
    """
    Location of a function's signature: the `=>` token of an arrow function,
    otherwise everything from the start of the function up to its parameters.
    """
    if node.type == "arrow_function":
        for child in node.children:
            if child.type == "=>":
                return span_of(child)
        return span_of(node)
    params = node.child_by_field_name("parameters")
    if params is None:
        return span_of(node)
    return SourceSpan(
        start_line=node.start_point.row + 1,
        start_column=node.start_point.column,
        end_line=params.start_point.row + 1,
        end_column=params.start_point.column,
        start_byte=node.start_byte,
        end_byte=params.start_byte,
    )


def markup_expression(container: Node) -> Optional[Node]:
    """The expression inside `{ ... }` in markup, or None for an empty container."""
    for child in container.named_children:
        if child.type != "comment":
            return unwrap_parens(child)
    return None


def markup_attribute_name(attribute: Node) -> Optional[Node]:
    name_node = attribute.child_by_field_name("name")
    if name_node is not None:
        return name_node
    for child in attribute.named_children:
        if child.type in {"property_identifier", "jsx_namespace_name", "identifier"}:
            return child
    return None


def markup_element_name(opening: Optional[Node]) -> Optional[Node]:
    if opening is None:
        return None
    return opening.child_by_field_name("name")
