from fastapi import APIRouter, HTTPException, Query
from pathlib import Path
from typing import List

from trackscope.models import LintRequest, LintResult, ReactivityOptions, ScanReport
from trackscope.services import lint
from trackscope.services.scope_stack import ReactivityInvariantError

router = APIRouter(prefix="/api/lint", tags=["lint"])

ROOT_PATH = Path.cwd()


def _options(reactive_function: List[str]) -> ReactivityOptions:
    return ReactivityOptions(custom_reactive_functions=reactive_function)


@router.post("", response_model=LintResult)
async def lint_source(request: LintRequest):
    """
    Lint source text sent in the request body.
    """
    try:
        return lint.lint_source(request.source, request.filename, request.options)
    except ReactivityInvariantError as e:
        raise HTTPException(status_code=500, detail=f"Analysis aborted: {e}")


@router.get("/file", response_model=LintResult)
async def lint_file(
    path: str = Query(..., description="Absolute path to the file"),
    reactive_function: List[str] = Query([]),
):
    """
    Lint a single file on disk.
    """
    file_path = Path(path)

    if not file_path.exists():
        raise HTTPException(status_code=404, detail="File not found")

    if not file_path.is_file():
        raise HTTPException(status_code=400, detail="Path is not a file")

    if not lint.is_lintable(file_path):
        raise HTTPException(status_code=400, detail=f"Unsupported file type: {file_path.suffix}")

    try:
        source = file_path.read_text(encoding="utf-8", errors="replace")
        return lint.lint_source(source, str(file_path), _options(reactive_function))
    except ReactivityInvariantError as e:
        raise HTTPException(status_code=500, detail=f"Analysis aborted: {e}")


@router.get("/scan", response_model=ScanReport)
async def scan(
    path: str = None,
    reactive_function: List[str] = Query([]),
):
    """
    Lint every source file below a directory, honouring .gitignore files.
    """
    target_path = Path(path) if path else ROOT_PATH

    if not target_path.exists():
        raise HTTPException(status_code=404, detail="Path not found")

    if not target_path.is_dir():
        raise HTTPException(status_code=400, detail="Path is not a directory")

    return lint.scan_codebase(target_path, _options(reactive_function))
