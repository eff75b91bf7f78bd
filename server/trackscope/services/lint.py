import os
import time
import logging
import concurrent.futures
from dataclasses import dataclass
from pathlib import Path

from pathspec import PathSpec

from trackscope.config import (
    IGNORE_DIRS,
    IGNORE_FILES,
    IGNORE_SUFFIXES,
    LINTABLE_SUFFIXES,
    SCAN_MAX_WORKERS,
    SCAN_POLL_SECONDS,
    SCAN_TIMEOUT_SECONDS,
)
from trackscope.models import LintResult, ReactivityOptions, ScanReport
from trackscope.services.reactivity import ReactivityAnalyzer
from trackscope.services.scope_stack import ReactivityInvariantError
from trackscope.services.scopes import TreeSitterScopeProvider

logger = logging.getLogger(__name__)


def find_repo_root(start_path: Path) -> Path:
    current = start_path.resolve()
    for parent in [current, *current.parents]:
        if (parent / ".git").exists(): return parent
    return current


def is_lintable(path: Path) -> bool:
    name = path.name.lower()
    if any(name.endswith(suffix) for suffix in IGNORE_SUFFIXES):
        return False
    return path.suffix.lower() in LINTABLE_SUFFIXES


def lint_source(source: str, filename: str = "input.tsx", options: ReactivityOptions | None = None) -> LintResult:
    """
    Analyze one in-memory source file.

    Analyzer invariant failures propagate as ReactivityInvariantError; callers
    that must not fail use lint_file or catch it themselves.
    """
    options = options or ReactivityOptions()
    provider = TreeSitterScopeProvider(source.encode("utf-8"), filename)
    analyzer = ReactivityAnalyzer(provider, options.custom_reactive_functions)
    diagnostics = analyzer.run()
    logger.debug("%s: %d finding(s)", filename, len(diagnostics))
    return LintResult(filename=filename, diagnostics=diagnostics)


def lint_file(file_path: str, options: ReactivityOptions | None = None) -> LintResult:
    """
    Lint a single file safely.
    Must be top-level for multiprocessing pickling.
    """
    try:
        source = Path(file_path).read_text(encoding="utf-8", errors="replace")
        result = lint_source(source, file_path, options)
        return result
    except ReactivityInvariantError as e:
        logger.error("analysis aborted for %s: %s", file_path, e)
        return LintResult(filename=file_path, error=f"analysis aborted: {e}")
    except Exception as e:
        # Return error info instead of crashing
        return LintResult(filename=file_path, error=str(e))


def _gitignore_files(repo_root: Path):
    """Every .gitignore in the repository, skipping directories we never scan."""
    for dirpath, dirnames, filenames in os.walk(repo_root):
        # node_modules can hold thousands of .gitignore files.
        dirnames[:] = [d for d in dirnames if d not in IGNORE_DIRS]
        if ".gitignore" in filenames:
            yield Path(dirpath) / ".gitignore"


def _rebase_pattern(line: str, base: str) -> str | None:
    """
    Rewrite one .gitignore line from the directory `base` so it matches paths
    relative to the repository root. Blank lines and comments give None.

    A pattern is anchored to `base` when it has a slash anywhere but at the
    end; otherwise it matches at any depth below `base`.
    """
    line = line.rstrip("\r\n")
    if not line.strip() or line.startswith("#"):
        return None
    negation = "!" if line.startswith("!") else ""
    body = line[len(negation):]
    anchored = "/" in body.rstrip("/")
    body = body.lstrip("/")
    if anchored:
        rebased = f"{base}/{body}" if base else body
    else:
        rebased = f"{base}/**/{body}" if base else f"**/{body}"
    return negation + rebased


@dataclass
class IgnoreRules:
    """All .gitignore files of one repository as a single root-relative matcher."""

    root: Path
    spec: PathSpec | None = None

    @classmethod
    def for_path(cls, path: Path) -> "IgnoreRules":
        root = find_repo_root(path)
        patterns: list[str] = []
        for gitignore in _gitignore_files(root):
            base = gitignore.parent.relative_to(root).as_posix()
            lines = gitignore.read_text(encoding="utf-8", errors="replace").splitlines()
            if base == ".":
                base = ""
            for line in lines:
                pattern = _rebase_pattern(line, base)
                if pattern is not None:
                    patterns.append(pattern)
        logger.debug("loaded %d gitignore pattern(s) under %s", len(patterns), root)
        return cls(root, PathSpec.from_lines("gitwildmatch", patterns) if patterns else None)

    def ignores(self, path: Path, is_dir: bool = False) -> bool:
        if self.spec is None:
            return False
        try:
            relative = path.resolve().relative_to(self.root).as_posix()
        except ValueError:
            return False
        # Directory-only patterns (`generated/`) need the trailing slash to match.
        return self.spec.match_file(relative + "/" if is_dir else relative)


def collect_lintable_files(root_path: Path) -> list[str]:
    rules = IgnoreRules.for_path(root_path)

    files_to_lint: list[str] = []
    for root_dir, dirs, files in os.walk(root_path):
        here = Path(root_dir)
        # Prune in place so os.walk never descends into ignored directories.
        dirs[:] = [d for d in dirs if d not in IGNORE_DIRS and not rules.ignores(here / d, is_dir=True)]
        files_to_lint.extend(
            str(here / name)
            for name in files
            if name not in IGNORE_FILES and is_lintable(here / name) and not rules.ignores(here / name)
        )

    return sorted(files_to_lint)


def _collect_result(future: concurrent.futures.Future, file: str, position: str) -> LintResult:
    try:
        result = future.result()
    except Exception as exc:
        print(f"❌ {position} Exception linting {file}: {exc}", flush=True)
        return LintResult(filename=file, error=str(exc))

    if result.error:
        print(f"❌ {position} Error linting {file}: {result.error}", flush=True)
    else:
        print(f"✅ {position} Linted {file}", flush=True)
    return result


def _run_lint_jobs(
    files_to_lint: list[str],
    options: ReactivityOptions,
    timeout_seconds: float,
    max_workers: int,
) -> list[LintResult]:
    """
    Lint files in a process pool.

    A file times out once it has been running for `timeout_seconds`. Its
    worker cannot be interrupted, so when every worker is stuck the files
    still queued are reported as timeouts too.
    """
    results: list[LintResult] = []
    total_count = len(files_to_lint)
    poll_seconds = min(timeout_seconds, SCAN_POLL_SECONDS)

    executor = concurrent.futures.ProcessPoolExecutor(max_workers=max_workers)
    stuck: list[concurrent.futures.Future] = []
    try:
        future_to_file = {executor.submit(lint_file, f, options): f for f in files_to_lint}
        started: dict[concurrent.futures.Future, float] = {}
        pending = set(future_to_file)

        def timed_out(future: concurrent.futures.Future) -> None:
            file = future_to_file[future]
            future.cancel()
            print(f"❌ [{len(results) + 1}/{total_count}] Timeout linting {file} (skipped)", flush=True)
            results.append(LintResult(filename=file, error="timeout"))

        while pending:
            done, pending = concurrent.futures.wait(
                pending, timeout=poll_seconds, return_when=concurrent.futures.FIRST_COMPLETED
            )
            for future in done:
                results.append(
                    _collect_result(future, future_to_file[future], f"[{len(results) + 1}/{total_count}]")
                )

            now = time.monotonic()
            for future in list(pending):
                if future.running():
                    started.setdefault(future, now)
                    if now - started[future] >= timeout_seconds:
                        pending.discard(future)
                        stuck.append(future)
                        timed_out(future)

            if pending and sum(1 for f in stuck if not f.done()) >= max_workers:
                logger.warning("all %d worker(s) stuck; skipping %d queued file(s)", max_workers, len(pending))
                for future in sorted(pending, key=lambda f: future_to_file[f]):
                    timed_out(future)
                pending = set()
    finally:
        # Waiting would block on a worker that is still busy with a timed-out file.
        executor.shutdown(wait=not stuck, cancel_futures=True)

    return results


def scan_codebase(root_path: Path, options: ReactivityOptions | None = None) -> ScanReport:
    options = options or ReactivityOptions()
    print(f"🔍 Scanning: {root_path}", flush=True)

    files_to_lint = collect_lintable_files(root_path)
    print(f"📂 Linting {len(files_to_lint)} source files...", flush=True)

    results = _run_lint_jobs(files_to_lint, options, SCAN_TIMEOUT_SECONDS, SCAN_MAX_WORKERS)
    results.sort(key=lambda r: r.filename)

    report = ScanReport(
        root=str(root_path),
        files=results,
        file_count=len(results),
        diagnostic_count=sum(len(r.diagnostics) for r in results),
        error_count=sum(1 for r in results if r.error),
    )
    logger.info(
        "scanned %s: %d file(s), %d finding(s), %d error(s)",
        root_path,
        report.file_count,
        report.diagnostic_count,
        report.error_count,
    )
    return report
