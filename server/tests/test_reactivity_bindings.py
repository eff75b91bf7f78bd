from trackscope.models import Diagnostic, ReactivityOptions
from trackscope.services.bindings import BindingKind
from trackscope.services.lint import lint_source
from trackscope.services.reactivity import ReactivityAnalyzer
from trackscope.services.scopes import TreeSitterScopeProvider


def _lint(code: str, filename: str = "app.tsx", **options) -> list[Diagnostic]:
    return lint_source(code, filename, ReactivityOptions(**options)).diagnostics


def _kinds(diagnostics: list[Diagnostic]) -> list[tuple[str, str | None]]:
    return [(d.kind, d.variant) for d in diagnostics]


def _analyze(code: str) -> ReactivityAnalyzer:
    analyzer = ReactivityAnalyzer(TreeSitterScopeProvider(code.encode("utf-8"), "app.tsx"))
    analyzer.run()
    return analyzer


def _find(node, type_name: str) -> list:
    found = [node] if node.type == type_name else []
    for child in node.children:
        found.extend(_find(child, type_name))
    return found


# --- props and stores ---


def test_props_member_read_outside_tracked_scope():
    code = """
    function Greeting(props) {
        const name = props.name;
        return <h1>{props.greeting} {name}</h1>;
    }
    """

    diagnostics = _lint(code)

    assert _kinds(diagnostics) == [("untracked-read", None)]
    assert diagnostics[0].data == {"name": "props.name"}
    assert diagnostics[0].start_byte == code.index("props.name")


def test_props_metadata_properties_are_not_tracked():
    code = """
    function Field(props) {
        const start = props.initialValue;
        const fallback = props.defaultLabel;
        return <input value={props.value ?? start} placeholder={fallback} />;
    }
    """

    assert _lint(code) == []


def test_destructuring_props_is_untracked_and_assigning_is_a_mutation():
    code = """
    function Card(props) {
        const { title } = props;
        props.title = "changed";
        return <div>{title}</div>;
    }
    """

    assert _kinds(_lint(code)) == [("untracked-read", None), ("illegal-mutation", None)]


def test_component_parameter_is_props_whatever_its_name():
    code = """
    function Card(p) {
        const title = p.title;
        return <div>{title}</div>;
    }

    function card(p) {
        const title = p.title;
        return <div>{title}</div>;
    }
    """

    diagnostics = _lint(code)

    assert _kinds(diagnostics) == [("untracked-read", None)]
    assert diagnostics[0].start_byte == code.index("p.title")


def test_render_prop_parameter_is_not_props():
    code = """
    function List() {
        return <Items>{(itemProps) => { const x = itemProps.value; return x; }}</Items>;
    }
    """

    assert _lint(code) == []


def test_store_reads_follow_props_rules():
    code = """
    import { createStore } from "solid-js/store";
    function App() {
        const [store, setStore] = createStore({ count: 0 });
        const snapshot = store.count;
        return <div onClick={() => setStore("count", (c) => c + 1)}>{store.count}</div>;
    }
    """

    diagnostics = _lint(code)

    assert _kinds(diagnostics) == [("untracked-read", None)]
    assert diagnostics[0].data == {"name": "store.count"}


def test_merge_props_result_is_props():
    code = """
    import { mergeProps } from "solid-js";
    function Button(props) {
        const merged = mergeProps({ kind: "primary" }, props);
        const kind = merged.kind;
        return <button class={merged.kind}>{kind}</button>;
    }
    """

    diagnostics = _lint(code)

    assert _kinds(diagnostics) == [("untracked-read", None)]
    assert diagnostics[0].data == {"name": "merged.kind"}


# --- synchronous callbacks ---


def test_array_iteration_callback_is_not_a_closure_boundary():
    code = """
    import { createSignal } from "solid-js";
    function App() {
        const [count] = createSignal(0);
        const totals = [1, 2].map((n) => n + count());
        return <div>{totals}</div>;
    }
    """

    diagnostics = _lint(code)

    # Attributed to App directly, not promoted to a derived function.
    assert _kinds(diagnostics) == [("untracked-read", None)]


def test_iteration_callback_inside_markup_is_tracked():
    code = """
    import { createSignal } from "solid-js";
    function App() {
        const [count] = createSignal(0);
        return <ul>{[1, 2].map((n) => <li>{n * count()}</li>)}</ul>;
    }
    """

    assert _lint(code) == []


def test_setter_updaters_batch_and_iife_are_sync_callbacks():
    code = """
    import { createSignal, batch } from "solid-js";
    const [count, setCount] = createSignal(0);
    setCount((c) => c + 1);
    batch(() => setCount(2));
    (() => setCount(3))();
    const later = () => setCount(4);
    """
    analyzer = _analyze(code)
    arrows = _find(analyzer.provider.root, "arrow_function")

    sync = [a for a in arrows if analyzer.stack.is_sync_callback(a)]

    assert len(arrows) == 4
    assert len(sync) == 3
    assert not analyzer.stack.is_sync_callback(arrows[-1])


def test_props_of_an_immediately_invoked_component_belong_to_the_caller():
    code = """
    function App() {
        const view = (function Row(row) {
            const label = row.label;
            return <div>{label}</div>;
        })();
        return view;
    }
    """

    diagnostics = _lint(code)

    assert _kinds(diagnostics) == [("untracked-read", None)]
    assert diagnostics[0].data == {"name": "row.label"}


def test_async_functions_are_never_sync_callbacks():
    code = """
    import { batch } from "solid-js";
    batch(async () => {});
    [1].forEach(async () => {});
    """
    analyzer = _analyze(code)

    assert analyzer.stack.sync_callbacks == set()


# --- derived signals ---


def test_named_function_reading_a_signal_becomes_a_derived_binding():
    code = """
    import { createSignal, createEffect } from "solid-js";
    const [count] = createSignal(0);
    function isPositive() {
        return count() > 0;
    }
    createEffect(() => isPositive());
    """
    analyzer = _analyze(code)

    kinds = {b.name: b.kind for b, _ in analyzer.registry.registered}

    assert kinds == {"count": BindingKind.SIGNAL, "isPositive": BindingKind.DERIVED_SIGNAL}
    assert analyzer.sink.diagnostics == []


def test_derived_function_used_untracked_inside_component():
    code = """
    import { createSignal } from "solid-js";
    function App() {
        const [count] = createSignal(0);
        const double = () => count() * 2;
        console.log(double());
        console.log(double());
        return <div>{double()}</div>;
    }
    """

    diagnostics = _lint(code)

    assert _kinds(diagnostics) == [("untracked-derived-function", "named")]
    assert diagnostics[0].start_byte == code.index("double =")


def test_object_method_reading_a_signal_is_left_alone():
    code = """
    import { createSignal } from "solid-js";
    const [count] = createSignal(0);
    const api = {
        read: () => count(),
        current() {
            return count();
        },
    };
    """

    assert _lint(code) == []


# --- list helpers and tracked-scope sources ---


def test_for_index_and_index_item_are_signals():
    code = """
    import { For, Index, createSignal } from "solid-js";
    function App() {
        const [items] = createSignal([1, 2]);
        return (
            <>
                <For each={items()}>{(item, i) => <div>{i}</div>}</For>
                <Index each={items()}>{(item) => <span>{item()}</span>}</Index>
            </>
        );
    }
    """

    diagnostics = _lint(code)

    assert _kinds(diagnostics) == [("bad-call-context", "unwrapped-markup-usage")]
    assert diagnostics[0].data["name"] == "i"


def test_map_array_index_is_a_signal():
    code = """
    import { mapArray, createSignal } from "solid-js";
    const [list] = createSignal([1]);
    const mapped = mapArray(list, (value, index) => value + index);
    """

    diagnostics = _lint(code)

    assert _kinds(diagnostics) == [("bad-call-context", "arithmetic-or-comparison")]
    assert diagnostics[0].data["name"] == "index"


def test_on_helper_and_observers_are_tracked_scopes():
    code = """
    import { createSignal, createEffect, on } from "solid-js";
    function App() {
        const [count] = createSignal(0);
        createEffect(on(count, (value) => console.log(value, count())));
        const observer = new ResizeObserver(() => console.log(count()));
        window.addEventListener("resize", () => console.log(count()));
        setTimeout(() => console.log(count()), 10);
        return <div />;
    }
    """

    assert _lint(code) == []


def test_custom_hooks_track_their_function_arguments():
    code = """
    import { createSignal } from "solid-js";
    function App() {
        const [count] = createSignal(0);
        useLogger(() => count());
        track(() => count());
        return <div />;
    }
    """

    default = _lint(code)
    configured = _lint(code, custom_reactive_functions=["track"])

    assert _kinds(default) == [("untracked-derived-function", "unnamed")]
    assert default[0].start_byte == code.index("=> count());\n        return")
    assert configured == []


def test_run_with_owner_captured_at_module_level_is_untracked():
    code = """
    import { createSignal, getOwner, runWithOwner } from "solid-js";
    const owner = getOwner();
    const [count] = createSignal(0);
    runWithOwner(owner, () => console.log(count()));
    """

    assert _kinds(_lint(code)) == [("untracked-derived-function", "unnamed")]


def test_run_with_owner_from_elsewhere_is_tracked():
    code = """
    import { createSignal, runWithOwner } from "solid-js";
    function App() {
        const owner = externalOwner;
        const [count] = createSignal(0);
        runWithOwner(owner, () => console.log(count()));
        return <div />;
    }
    """

    assert _lint(code) == []
