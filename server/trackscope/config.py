from typing import Set

IGNORE_DIRS: Set[str] = {
    '.git',
    'node_modules',
    'venv',
    '.venv',
    '__pycache__',
    'dist',
    'build',
    '.next',
    '.output',
    '.vinxi',
    'coverage',
    '.idea',
    '.vscode',
    'out',
}

IGNORE_FILES: Set[str] = {
    'vite.config.ts', 'vitest.config.ts', 'app.config.ts',
}

# Suffixes parsed with the TSX grammar; the rest of LINTABLE_SUFFIXES use
# the plain TypeScript grammar.
TSX_SUFFIXES: Set[str] = {'.tsx', '.jsx', '.js', '.mjs', '.cjs'}

LINTABLE_SUFFIXES: Set[str] = TSX_SUFFIXES | {'.ts', '.mts', '.cts'}

# Skip generated bundles even when they are not gitignored.
IGNORE_SUFFIXES: Set[str] = {'.d.ts', '.min.js'}

SCAN_TIMEOUT_SECONDS: float = 5.0
SCAN_MAX_WORKERS: int = 4
# How often the scan checks running files against SCAN_TIMEOUT_SECONDS.
SCAN_POLL_SECONDS: float = 0.1
