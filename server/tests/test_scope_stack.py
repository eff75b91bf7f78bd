import pytest

from trackscope.services.bindings import BindingKind, BindingRegistry
from trackscope.services.imports import ImportAliasTable
from trackscope.services.scope_stack import (
    ReactivityInvariantError,
    ScopeStack,
    ScopeStackError,
)
from trackscope.services.scopes import TreeSitterScopeProvider
from trackscope.services.syntax import node_text


def _provider(code: str) -> TreeSitterScopeProvider:
    return TreeSitterScopeProvider(code.encode("utf-8"), "input.tsx")


def _find(node, type_name: str) -> list:
    found = [node] if node.type == type_name else []
    for child in node.children:
        found.extend(_find(child, type_name))
    return found


def _identifiers(node, name: str) -> list:
    return [n for n in _find(node, "identifier") if node_text(n) == name]


NESTED = """
const outer = () => {
    const inner = () => 1;
};
"""


def test_exit_underflow_and_mismatch_raise():
    provider = _provider(NESTED)
    outer, inner = _find(provider.root, "arrow_function")
    stack = ScopeStack()

    with pytest.raises(ScopeStackError):
        stack.exit(provider.root)

    stack.enter(provider.root)
    stack.enter(outer)
    with pytest.raises(ScopeStackError) as exc:
        stack.exit(provider.root)

    assert isinstance(exc.value, ReactivityInvariantError)
    assert isinstance(exc.value, RuntimeError)
    assert stack.exit(outer).node == outer
    assert len(stack) == 1


def test_find_deepest_declaration_scope():
    provider = _provider(NESTED)
    outer, inner = _find(provider.root, "arrow_function")
    stack = ScopeStack()
    stack.enter(provider.root)
    stack.enter(outer)

    assert stack.find_deepest_declaration_scope(provider.root, outer) == outer
    assert stack.find_deepest_declaration_scope(outer, provider.root) == outer
    assert stack.find_deepest_declaration_scope(outer, outer) == outer
    # Both scopes must still be open.
    with pytest.raises(ScopeStackError):
        stack.find_deepest_declaration_scope(inner, provider.root)
    with pytest.raises(ScopeStackError):
        stack.find_deepest_declaration_scope(provider.root, inner)
    with pytest.raises(ScopeStackError):
        stack.find_deepest_declaration_scope(inner, inner)

    stack.exit(outer)
    stack.exit(provider.root)
    with pytest.raises(ScopeStackError):
        stack.find_deepest_declaration_scope(inner, outer)


def test_owning_scope_skips_sync_callbacks():
    provider = _provider("const f = () => [1].map((n) => value);")
    f_arrow, callback = _find(provider.root, "arrow_function")
    value = _identifiers(provider.root, "value")[0]
    stack = ScopeStack()

    assert stack.owning_scope(value) == callback

    stack.mark_sync_callback(callback)
    stack.mark_sync_callback(None)

    assert stack.is_sync_callback(callback)
    assert stack.owning_scope(value) == f_arrow
    assert stack.sync_callbacks == {callback.id}


def test_registry_skips_init_references_and_drains_by_scope():
    code = """
    const count = 0;
    count;
    const read = () => count;
    """
    provider = _provider(code)
    count_var = provider.variable_for(_identifiers(provider.root, "count")[0])
    arrow = _find(provider.root, "arrow_function")[0]
    stack = ScopeStack()
    registry = BindingRegistry(stack)
    stack.enter(provider.root)

    binding = registry.push_signal(count_var)

    assert binding.kind == BindingKind.SIGNAL
    assert binding.declaration_scope == provider.root
    assert len(binding.references) == 2
    assert all(not r.is_init for r in binding.references)

    stack.enter(arrow)
    drained = registry.consume_signal_references_in_scope()
    stack.exit(arrow)

    assert [s.reference.identifier.start_byte for s in drained] == [code.rindex("count")]
    assert drained[0].declaration_scope == provider.root

    drained = registry.consume_signal_references_in_scope()

    assert len(drained) == 1
    assert registry.signals == []
    assert len(registry.history) == 2


def test_push_unique_signal_widens_to_the_deepest_scope():
    provider = _provider(NESTED)
    outer, inner = _find(provider.root, "arrow_function")
    inner_var = provider.variable_for(_identifiers(provider.root, "inner")[0])
    stack = ScopeStack()
    registry = BindingRegistry(stack)
    stack.enter(provider.root)
    stack.enter(outer)

    first = registry.push_unique_signal(inner_var, provider.root)
    second = registry.push_unique_signal(inner_var, outer)

    assert first is second
    assert first.kind == BindingKind.DERIVED_SIGNAL
    assert first.declaration_scope == outer
    assert len(registry.signals) == 1


def test_import_alias_table():
    code = """
    import { createSignal as signal, createEffect } from "solid-js";
    import { createStore } from "solid-js/store";
    import { onMount } from "./lifecycle";
    import batch from "solid-js";
    import * as solid from "solid-js";
    """
    provider = _provider(code)
    table = ImportAliasTable()
    for node in _find(provider.root, "import_statement"):
        table.record(node)

    assert table.match("createSignal", "signal") == "createSignal"
    assert table.match("createSignal", "createSignal") is None
    assert table.match(("createMemo", "createEffect"), "createEffect") == "createEffect"
    assert table.match("createStore", "createStore") == "createStore"
    assert table.match("onMount", "onMount") is None
    assert table.match("batch", "batch") is None
    assert table.lookup() == {
        "signal": "createSignal",
        "createEffect": "createEffect",
        "createStore": "createStore",
    }
