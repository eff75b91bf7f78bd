import argparse
import json
import os
from pathlib import Path

import uvicorn

from trackscope.models import LintResult, ReactivityOptions
from trackscope.services import lint


def _print_result(result: LintResult, base: Path) -> None:
    try:
        shown = Path(result.filename).relative_to(base).as_posix()
    except ValueError:
        shown = result.filename
    if result.error:
        print(f"❌ {shown}: {result.error}", flush=True)
        return
    for d in result.diagnostics:
        variant = f" ({d.variant})" if d.variant else ""
        print(f"{shown}:{d.line}:{d.column + 1} {d.kind}{variant} {d.message}", flush=True)


def _serve(target_path: Path, host: str, port: int) -> None:
    # Change working directory so the API defaults to this path.
    os.chdir(target_path if target_path.is_dir() else target_path.parent)

    url = f"http://{host}:{port}"
    print(f"🚀 Starting server at {url}")
    print("   Press Ctrl+C to stop.")

    uvicorn.run(
        "trackscope.main:app",
        host=host,
        port=port,
        reload=False,
    )


def main(argv: list[str] | None = None) -> int:
    """
    Entry point for the CLI.

    - Lints a file or every source file below a directory (default: cwd).
    - Prints one line per finding; exits with status 1 when there are any.
    - With --serve, starts the HTTP API instead.
    """
    parser = argparse.ArgumentParser(
        prog="trackscope",
        description=(
            "Reactivity-flow linter for fine-grained reactive UI code. "
            "By default, lints the current working directory."
        ),
    )
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="File or directory to lint (default: current directory).",
    )
    parser.add_argument(
        "--reactive-function",
        dest="reactive_functions",
        action="append",
        default=[],
        metavar="NAME",
        help="Treat calls to NAME like use*/create* hooks (repeatable).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full result as JSON instead of one line per finding.",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Start the HTTP API instead of linting once.",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface to bind the server to (default: 127.0.0.1).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to run the server on (default: 8000).",
    )

    args = parser.parse_args(argv)

    target_path = Path(os.path.abspath(args.path))
    if not target_path.exists():
        raise SystemExit(f"Path does not exist: {target_path}")

    if args.serve:
        _serve(target_path, args.host, args.port)
        return 0

    options = ReactivityOptions(custom_reactive_functions=args.reactive_functions)

    if target_path.is_file():
        results = [lint.lint_file(str(target_path), options)]
        base = target_path.parent
        payload = results[0]
    else:
        report = lint.scan_codebase(target_path, options)
        results = report.files
        base = target_path
        payload = report

    if args.json:
        print(json.dumps(payload.model_dump(), indent=2), flush=True)
    else:
        for result in results:
            _print_result(result, base)

    findings = sum(len(r.diagnostics) for r in results)
    if not args.json:
        print(f"🔎 {findings} finding(s) in {len(results)} file(s)", flush=True)
    return 1 if findings else 0


if __name__ == "__main__":
    raise SystemExit(main())
