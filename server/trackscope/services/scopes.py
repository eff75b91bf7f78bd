from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from tree_sitter import Node, Tree

from trackscope.services.syntax import (
    NodeKind,
    SyntaxNode,
    is_function_node,
    is_identifier,
    kind_of,
    logical_parent,
    node_text,
    parser_for,
    same_node,
)


@dataclass(frozen=True, eq=False)
class Reference:
    identifier: Node
    is_read: bool
    is_write: bool
    is_init: bool = False

    @property
    def is_read_only(self) -> bool:
        return self.is_read and not self.is_write


@dataclass(frozen=True)
class Definition:
    kind: str  # "variable" | "parameter" | "function" | "class" | "import" | "catch"
    node: Node  # declarator, function, class or import specifier
    name_node: Node
    declaration_kind: Optional[str] = None  # "const" | "let" | "var" for variables


@dataclass(eq=False)
class Variable:
    name: str
    scope: "LexicalScope"
    definitions: List[Definition] = field(default_factory=list)
    references: List[Reference] = field(default_factory=list)


@dataclass(eq=False)
class LexicalScope:
    node: Node
    type: str  # "module" | "function" | "block" | "catch" | "for"
    parent: Optional["LexicalScope"]
    variables: Dict[str, Variable] = field(default_factory=dict)

    def resolve(self, name: str) -> Optional[Variable]:
        curr: Optional[LexicalScope] = self
        while curr is not None:
            if name in curr.variables:
                return curr.variables[name]
            curr = curr.parent
        return None

    def function_scope(self) -> "LexicalScope":
        curr = self
        while curr.type not in {"function", "module"} and curr.parent is not None:
            curr = curr.parent
        return curr


class ScopeProvider(Protocol):
    """Everything the reactivity analyzer needs from a parsed file."""

    source: bytes
    root: SyntaxNode

    def kind(self, node: SyntaxNode) -> NodeKind: ...

    def parent(self, node: SyntaxNode) -> Optional[SyntaxNode]: ...

    def variable_for(self, identifier: SyntaxNode) -> Optional[Variable]: ...

    def declared_variables(self, node: SyntaxNode) -> List[Variable]: ...

    def text(self, node: SyntaxNode) -> str: ...


_DESTRUCTURING_TYPES = {
    "array_pattern",
    "object_pattern",
    "pair_pattern",
    "assignment_pattern",
    "object_assignment_pattern",
    "rest_pattern",
    "parenthesized_expression",
}

_REFERENCE_TYPES = {
    "identifier",
    "shorthand_property_identifier",
    "shorthand_property_identifier_pattern",
}


def pattern_bindings(pattern: Optional[Node]) -> List[Node]:
    """Identifiers bound by a declaration or parameter pattern, in source order."""
    found: List[Node] = []

    def walk(x: Optional[Node]) -> None:
        if x is None:
            return
        if x.type in {"identifier", "shorthand_property_identifier_pattern"}:
            found.append(x)
            return
        # For `{ key: value }` patterns, only the value side introduces bindings.
        if x.type == "pair_pattern":
            walk(x.child_by_field_name("value"))
            return
        # Defaults (`a = 1`) bind only their left side.
        if x.type in {"assignment_pattern", "object_assignment_pattern"}:
            walk(x.child_by_field_name("left"))
            return
        if x.type in {"required_parameter", "optional_parameter"}:
            walk(x.child_by_field_name("pattern"))
            return
        if x.type in {"array_pattern", "object_pattern", "rest_pattern"}:
            for c in x.named_children:
                walk(c)

    walk(pattern)
    return found


def nth_pattern_element(pattern: Optional[Node], n: int) -> Optional[Node]:
    """The nth element of an array pattern, counting holes."""
    if pattern is None or pattern.type != "array_pattern":
        return None
    index = 0
    for child in pattern.children:
        if child.type == ",":
            index += 1
            continue
        if not child.is_named or child.type == "comment":
            continue
        if index == n:
            return child
    return None


def _declaration_keyword(declarator: Node) -> Optional[str]:
    parent = declarator.parent
    if parent is None:
        return None
    if parent.type == "variable_declaration":
        return "var"
    if parent.type == "lexical_declaration":
        for child in parent.children:
            if child.type in {"const", "let"}:
                return child.type
    return None


class TreeSitterScopeProvider:
    """
    Parses a TS/TSX source and resolves every identifier to the variable it
    refers to.

    Phase 1 creates lexical scopes and records declarations; phase 2 walks the
    tree again and attaches references (read/write/init) to the resolved
    variables. Identifiers that resolve to nothing are globals and are left
    alone.
    """

    def __init__(self, source: bytes, filename: str = "input.tsx"):
        self.source = source
        self.filename = filename
        self.tree: Tree = parser_for(filename).parse(source)
        self.root: Node = self.tree.root_node

        self.module_scope = LexicalScope(node=self.root, type="module", parent=None)
        self.scopes: List[LexicalScope] = [self.module_scope]
        self._scope_by_node: Dict[int, LexicalScope] = {}
        # identifier id -> (variable, creates an init reference)
        self._binding_sites: Dict[int, Tuple[Variable, bool]] = {}
        self._resolved: Dict[int, Variable] = {}
        self._declared: Dict[int, List[Variable]] = {}

        self._walk(self._collect_declarations)
        self._walk(self._collect_references)

    # --- ScopeProvider ---

    def kind(self, node: Node) -> NodeKind:
        return kind_of(node)

    def parent(self, node: Node) -> Optional[Node]:
        return logical_parent(node)

    def variable_for(self, identifier: Node) -> Optional[Variable]:
        return self._resolved.get(identifier.id)

    def declared_variables(self, node: Node) -> List[Variable]:
        return list(self._declared.get(node.id, []))

    def text(self, node: Node) -> str:
        return node_text(node)

    # --- Phase 1: scopes and declarations ---

    def _is_scope_boundary(self, n: Node) -> bool:
        if is_function_node(n) or n.type in {"catch_clause", "for_statement", "for_in_statement"}:
            return True
        if n.type in {"statement_block", "class_body", "switch_body"}:
            # Function and catch bodies share the scope of their owner.
            parent = n.parent
            return not (parent is not None and (is_function_node(parent) or parent.type == "catch_clause"))
        return False

    def _scope_type(self, n: Node) -> str:
        if is_function_node(n):
            return "function"
        if n.type == "catch_clause":
            return "catch"
        if n.type in {"for_statement", "for_in_statement"}:
            return "for"
        return "block"

    def _declare(
        self,
        name_node: Node,
        scope: LexicalScope,
        definition: Definition,
        *,
        init: bool = False,
        owner: Optional[Node] = None,
    ) -> Variable:
        name = node_text(name_node)
        variable = scope.variables.get(name)
        if variable is None:
            variable = Variable(name=name, scope=scope)
            scope.variables[name] = variable
        variable.definitions.append(definition)
        self._binding_sites[name_node.id] = (variable, init)
        self._resolved[name_node.id] = variable
        if owner is not None:
            self._declared.setdefault(owner.id, []).append(variable)
        return variable

    def _walk(self, visit: Callable[[Node, LexicalScope], LexicalScope]) -> None:
        """Pre-order walk with an explicit stack; `visit` returns the scope for the children."""
        pending: List[Tuple[Node, LexicalScope]] = [(self.root, self.module_scope)]
        while pending:
            n, current = pending.pop()
            scope = visit(n, current)
            pending.extend((c, scope) for c in reversed(n.children))

    def _collect_declarations(self, n: Node, current: LexicalScope) -> LexicalScope:
        scope = current
        if n is not self.root and self._is_scope_boundary(n):
            scope = LexicalScope(node=n, type=self._scope_type(n), parent=current)
            self.scopes.append(scope)
            self._scope_by_node[n.id] = scope

        if n.type == "import_statement":
            self._declare_imports(n)

        elif n.type == "variable_declarator":
            keyword = _declaration_keyword(n)
            target = scope.function_scope() if keyword == "var" else scope
            has_value = n.child_by_field_name("value") is not None
            for ident in pattern_bindings(n.child_by_field_name("name")):
                self._declare(
                    ident,
                    target,
                    Definition("variable", n, ident, keyword),
                    init=has_value,
                    owner=n,
                )

        elif n.type in {"function_declaration", "generator_function_declaration"}:
            name_node = n.child_by_field_name("name")
            if name_node is not None:
                # The function name lives in the enclosing scope.
                self._declare(name_node, current, Definition("function", n, name_node), owner=n)

        elif n.type == "class_declaration":
            name_node = n.child_by_field_name("name")
            if name_node is not None:
                self._declare(name_node, current, Definition("class", n, name_node), owner=n)

        elif n.type == "catch_clause":
            for ident in pattern_bindings(n.child_by_field_name("parameter")):
                self._declare(ident, scope, Definition("catch", n, ident))

        elif n.type == "for_in_statement":
            keyword = next((c.type for c in n.children if c.type in {"const", "let", "var"}), None)
            if keyword is not None:
                target = scope.function_scope() if keyword == "var" else scope
                for ident in pattern_bindings(n.child_by_field_name("left")):
                    self._declare(ident, target, Definition("variable", n, ident, keyword), init=True)

        if is_function_node(n):
            if n.type in {"function_expression", "function", "generator_function"}:
                name_node = n.child_by_field_name("name")
                if name_node is not None:
                    self._declare(name_node, scope, Definition("function", n, name_node), owner=n)
            single = n.child_by_field_name("parameter")
            params = [single] if single is not None else []
            formal = n.child_by_field_name("parameters")
            if formal is not None:
                params.extend(formal.named_children)
            for param in params:
                for ident in pattern_bindings(param):
                    self._declare(ident, scope, Definition("parameter", n, ident))

        return scope

    def _declare_imports(self, n: Node) -> None:
        clause = next((c for c in n.children if c.type == "import_clause"), None)
        if clause is None:
            return
        for child in clause.named_children:
            if child.type == "identifier":
                self._declare(child, self.module_scope, Definition("import", child, child))
            elif child.type == "namespace_import":
                name_node = next((c for c in child.named_children if c.type == "identifier"), None)
                if name_node is not None:
                    self._declare(name_node, self.module_scope, Definition("import", child, name_node))
            elif child.type == "named_imports":
                for spec in child.named_children:
                    if spec.type != "import_specifier":
                        continue
                    local = spec.child_by_field_name("alias") or spec.child_by_field_name("name")
                    if is_identifier(local):
                        self._declare(local, self.module_scope, Definition("import", spec, local))

    # --- Phase 2: references ---

    def _is_non_reference(self, n: Node) -> bool:
        parent = n.parent
        if parent is None:
            return True
        if parent.type in {"jsx_opening_element", "jsx_closing_element", "jsx_self_closing_element"}:
            return same_node(parent.child_by_field_name("name"), n)
        if parent.type in {"jsx_namespace_name", "export_specifier", "import_specifier", "namespace_import", "import_clause"}:
            return parent.type != "export_specifier" or not same_node(parent.child_by_field_name("name"), n)
        if parent.type in {"enum_declaration", "internal_module", "module"}:
            return same_node(parent.child_by_field_name("name"), n)
        return False

    def _collect_references(self, n: Node, current: LexicalScope) -> LexicalScope:
        scope = self._scope_by_node.get(n.id, current)

        if n.type in _REFERENCE_TYPES:
            site = self._binding_sites.get(n.id)
            if site is not None:
                variable, init = site
                if init:
                    variable.references.append(
                        Reference(identifier=n, is_read=False, is_write=True, is_init=True)
                    )
            elif not self._is_non_reference(n):
                variable = scope.resolve(node_text(n))
                if variable is not None:
                    is_read, is_write = _reference_flags(n)
                    variable.references.append(
                        Reference(identifier=n, is_read=is_read, is_write=is_write)
                    )
                    self._resolved[n.id] = variable

        return scope


def _reference_flags(n: Node) -> Tuple[bool, bool]:
    """(is_read, is_write) for a non-declaring identifier occurrence."""
    child = n
    parent = n.parent
    # Climb out of destructuring targets such as `[a, b] = pair`.
    while parent is not None and parent.type in _DESTRUCTURING_TYPES:
        if parent.type in {"assignment_pattern", "object_assignment_pattern"}:
            if not same_node(parent.child_by_field_name("left"), child):
                return True, False
        if parent.type == "pair_pattern" and not same_node(parent.child_by_field_name("value"), child):
            return True, False
        child = parent
        parent = parent.parent

    if parent is None:
        return True, False
    if parent.type == "assignment_expression" and same_node(parent.child_by_field_name("left"), child):
        return False, True
    if parent.type == "augmented_assignment_expression" and same_node(parent.child_by_field_name("left"), child):
        return True, True
    if parent.type == "update_expression":
        return True, True
    if parent.type == "for_in_statement" and same_node(parent.child_by_field_name("left"), child):
        return False, True
    return True, False


def trace(node: Node, provider: ScopeProvider, _seen: Optional[set] = None) -> Node:
    """
    Follow an identifier to what it stands for: the initializer of a constant
    (or never-reassigned) variable, or the declaration of a function, class or
    import. Anything else is returned unchanged.
    """
    if not is_identifier(node):
        return node
    variable = provider.variable_for(node)
    if variable is None or not variable.definitions:
        return node
    seen = _seen if _seen is not None else set()
    if node.id in seen:
        return node
    seen.add(node.id)

    definition = variable.definitions[0]
    if definition.kind in {"function", "class", "import"}:
        return definition.node
    if definition.kind == "variable" and definition.node.type == "variable_declarator":
        declarator = definition.node
        value = declarator.child_by_field_name("value")
        never_reassigned = all(r.is_init or r.is_read_only for r in variable.references)
        if (
            (definition.declaration_kind == "const" or never_reassigned)
            and is_identifier(declarator.child_by_field_name("name"))
            and value is not None
        ):
            return trace(_unwrap_value(value), provider, seen)
    return node


def _unwrap_value(value: Node) -> Node:
    while value.type == "parenthesized_expression" and value.named_children:
        value = value.named_children[0]
    return value
