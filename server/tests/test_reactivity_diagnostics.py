from trackscope.models import Diagnostic, ReactivityOptions
from trackscope.services.diagnostics import apply_edits
from trackscope.services.lint import lint_source


def _lint(code: str, filename: str = "app.tsx", **options) -> list[Diagnostic]:
    return lint_source(code, filename, ReactivityOptions(**options)).diagnostics


def _kinds(diagnostics: list[Diagnostic]) -> list[tuple[str, str | None]]:
    return [(d.kind, d.variant) for d in diagnostics]


def test_template_interpolation_needs_a_call():
    code = """
    import { createSignal } from "solid-js";
    const [count] = createSignal(0);
    const label = `count is ${count}`;
    """

    diagnostics = _lint(code)

    assert _kinds(diagnostics) == [("bad-call-context", "template-interpolation")]
    assert "template literals" in diagnostics[0].message


def test_unary_operator_needs_a_call():
    code = """
    import { createSignal } from "solid-js";
    const [count] = createSignal(0);
    const negative = -count;
    const flipped = !count;
    """

    assert _kinds(_lint(code)) == [("bad-call-context", "unary")]


def test_computed_property_key_needs_a_call():
    code = """
    import { createSignal } from "solid-js";
    const [key] = createSignal("a");
    const value = lookup[key];
    """

    assert _kinds(_lint(code)) == [("bad-call-context", "computed-property-key")]


def test_markup_child_and_native_attribute_need_a_call():
    code = """
    import { createSignal } from "solid-js";
    function App() {
        const [count] = createSignal(0);
        return (
            <div>
                {count}
                <input value={count} />
                <Display value={count} />
            </div>
        );
    }
    """

    diagnostics = _lint(code)

    assert _kinds(diagnostics) == [
        ("bad-call-context", "unwrapped-markup-usage"),
        ("bad-call-context", "unwrapped-markup-usage"),
    ]
    assert diagnostics[0].start_byte == code.index("count}\n")
    assert diagnostics[1].start_byte == code.index("count} />")


def test_bad_call_context_suggests_appending_parentheses():
    code = """
    import { createSignal } from "solid-js";
    const [count] = createSignal(0);
    const x = count + 1;
    """

    (d,) = _lint(code)
    fixed = apply_edits(code, d.fixes)

    assert "const x = count() + 1;" in fixed


def test_untracked_read_inside_component():
    code = """
    import { createSignal } from "solid-js";
    function Counter() {
        const [count] = createSignal(0);
        console.log(count());
        return <div>{count()}</div>;
    }
    """

    diagnostics = _lint(code)

    assert _kinds(diagnostics) == [("untracked-read", None)]
    d = diagnostics[0]
    assert d.start_byte == code.index("count());")
    assert d.end_byte == code.index("count());") + len("count()")
    assert d.data == {"name": "count"}


def test_event_handler_expression_needs_function_wrapper():
    code = """
    import { createSignal } from "solid-js";
    function Counter() {
        const [count, setCount] = createSignal(0);
        return <button onClick={setCount(count() + 1)}>+</button>;
    }
    """

    assert _kinds(_lint(code)) == [("needs-function-wrapper", None)]


def test_event_handler_function_is_clean():
    code = """
    import { createSignal } from "solid-js";
    function Counter() {
        const [count, setCount] = createSignal(0);
        return <button onClick={() => setCount(count() + 1)}>{count()}</button>;
    }
    """

    assert _lint(code) == []


def test_async_effect_is_disallowed_but_async_lifecycle_hook_is_not():
    code = """
    import { createEffect, onMount } from "solid-js";
    createEffect(async () => {
        await fetch("/a");
    });
    onMount(async () => {
        await fetch("/b");
    });
    """

    diagnostics = _lint(code)

    assert _kinds(diagnostics) == [("disallowed-async-tracked-scope", None)]
    assert diagnostics[0].start_byte == code.index("async () => {\n        await fetch(\"/a\")")


def test_unnamed_function_with_reactivity_outside_tracked_scope():
    code = """
    import { createSignal } from "solid-js";
    const [count] = createSignal(0);
    const handlers = [() => count()];
    """

    diagnostics = _lint(code)

    assert _kinds(diagnostics) == [("untracked-derived-function", "unnamed")]
    # Reported at the arrow of the function's signature.
    assert diagnostics[0].start_byte == code.index("=> count()")


def test_factory_results_that_are_not_destructured_or_assigned():
    code = """
    import { createSignal, createMemo, splitProps } from "solid-js";
    const signal = createSignal(0);
    createMemo(() => 1);
    const [] = splitProps(other, ["a"]);
    """

    diagnostics = _lint(code)

    assert _kinds(diagnostics) == [
        ("declaration-shape-advisory", "destructure"),
        ("declaration-shape-advisory", "assign"),
        ("declaration-shape-advisory", "destructure"),
    ]
    assert "capture the first result" in diagnostics[0].message
    assert diagnostics[0].start_byte == code.index("signal =")
    assert diagnostics[1].start_byte == code.index("createMemo(() => 1)")
    assert "capture the result" in diagnostics[2].message


def test_primitives_only_count_when_imported_from_the_framework():
    code = """
    import { createSignal } from "./local-signals";
    const [count] = createSignal(0);
    const x = count + 1;
    """

    assert _lint(code) == []


def test_aliased_import_is_recognised():
    code = """
    import { createSignal as signal } from "solid-js";
    const [count] = signal(0);
    const x = count * 2;
    """

    assert _kinds(_lint(code)) == [("bad-call-context", "arithmetic-or-comparison")]


def test_diagnostics_are_sorted_by_position():
    code = """
    import { createSignal } from "solid-js";
    const [a] = createSignal(0);
    const [b] = createSignal(0);
    const y = b + 1;
    const x = a + 1;
    """

    diagnostics = _lint(code)

    assert [d.data["name"] for d in diagnostics] == ["b", "a"]
    assert [d.start_byte for d in diagnostics] == sorted(d.start_byte for d in diagnostics)


def test_long_operator_chain_is_analyzed():
    chain = " + ".join(['"a"'] * 2000)

    assert _lint(f"const s = {chain};\n", "strings.ts") == []


def test_signal_at_the_bottom_of_a_long_chain_is_reported():
    code = (
        'import { createSignal } from "solid-js";\n'
        "const [count] = createSignal(0);\n"
        "const total = count" + " + 1" * 2000 + ";\n"
    )

    diagnostics = _lint(code, "total.ts")

    assert _kinds(diagnostics) == [("bad-call-context", "arithmetic-or-comparison")]
    assert diagnostics[0].start_byte == code.index("count + 1")
