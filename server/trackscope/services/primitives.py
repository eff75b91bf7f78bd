"""
Static name tables for the reactive framework's primitives.

Everything here is read-only module state; nothing is mutated after import.
"""

import re

# Imports from any of these module specifiers refer to framework primitives.
FRAMEWORK_SOURCE = re.compile(r"^solid-js(?:/?|\b)")

REACTIVE_HOOK_NAME = re.compile(r"^(?:use|create)[A-Z]")
PROPS_NAME = re.compile(r"[pP]rops")
NON_REACTIVE_PROPERTY = re.compile(r"^(?:initial|default|static)[A-Z]")
EVENT_HANDLER_ATTRIBUTE = re.compile(r"^on[:A-Z]")
DOM_EVENT_PROPERTY = re.compile(r"^on[a-z]+$")
STATIC_ATTRIBUTE = re.compile(r"^static[A-Z]")
DOM_ELEMENT_NAME = re.compile(r"^[a-z]")

# Primitives whose first argument is re-run whenever its reads change.
TRACKED_FUNCTION_PRIMITIVES = (
    "createMemo",
    "children",
    "createEffect",
    "createRenderEffect",
    "createDeferred",
    "createComputed",
    "createSelector",
    "untrack",
    "mapArray",
    "indexArray",
    "observable",
)

LIFECYCLE_PRIMITIVES = ("onMount", "onCleanup", "onError")

TIMER_FUNCTIONS = (
    "setInterval",
    "setTimeout",
    "setImmediate",
    "requestAnimationFrame",
    "requestIdleCallback",
)

WEB_OBSERVERS = (
    "IntersectionObserver",
    "MutationObserver",
    "PerformanceObserver",
    "ReportingObserver",
    "ResizeObserver",
)

SYNC_WRAPPER_PRIMITIVES = ("batch", "produce")

ARRAY_ITERATION_METHODS = frozenset(
    {
        "forEach",
        "map",
        "flatMap",
        "reduce",
        "reduceRight",
        "find",
        "findIndex",
        "filter",
        "every",
        "some",
    }
)

SIGNAL_FACTORIES = ("createSignal", "useTransition")
MEMO_FACTORIES = ("createMemo", "createSelector")
SETTER_FACTORIES = ("createSignal", "createStore")
REACTION_FACTORIES = ("createReactive", "createReaction")

# Binary operators that coerce a function operand instead of calling it.
COERCING_BINARY_OPERATORS = frozenset(
    {"<", "<=", ">", ">=", "<<", ">>", ">>>", "+", "-", "*", "/", "%", "**", "|", "^", "&", "in"}
)
COERCING_UNARY_OPERATORS = frozenset({"-", "+", "~"})


def is_props_name(name: str) -> bool:
    return PROPS_NAME.search(name) is not None


def is_dom_element_name(name: str) -> bool:
    return DOM_ELEMENT_NAME.match(name) is not None


def is_reactive_hook_name(name: str) -> bool:
    return REACTIVE_HOOK_NAME.match(name) is not None
