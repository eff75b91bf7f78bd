from typing import Dict, List, Optional
from pydantic import BaseModel, Field

class TextEdit(BaseModel):
    # Byte offsets into the analyzed source; an empty range is an insertion.
    start_byte: int
    end_byte: int
    replacement: str = ""

class Diagnostic(BaseModel):
    kind: str  # MessageKind value, e.g. "untracked-read"
    variant: Optional[str] = None
    message: str
    line: int  # 1-based
    column: int  # 0-based
    end_line: int
    end_column: int
    start_byte: int
    end_byte: int
    data: Dict[str, str] = Field(default_factory=dict)
    fixes: List[TextEdit] = Field(default_factory=list)

class ReactivityOptions(BaseModel):
    # Extra function names treated like `use*` / `create*` hooks.
    custom_reactive_functions: List[str] = Field(default_factory=list)

    model_config = {
        "populate_by_name": True
    }

class LintRequest(BaseModel):
    source: str
    filename: str = "input.tsx"
    options: ReactivityOptions = Field(default_factory=ReactivityOptions)

class LintResult(BaseModel):
    filename: str
    diagnostics: List[Diagnostic] = Field(default_factory=list)
    error: Optional[str] = None

class ScanReport(BaseModel):
    root: str
    files: List[LintResult] = Field(default_factory=list)
    file_count: int = 0
    diagnostic_count: int = 0
    error_count: int = 0
