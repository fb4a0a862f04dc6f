"""
Canonical path resolution for the ice cream truck noise analysis.

This module is the single source of truth for all paths in the project.
Scripts import paths from here rather than building relative '../' paths.

- Detect root via `.project-root` (primary) and fallback markers
- Expose canonical Paths: RAW_DIR, PROCESSED_DIR, FIGURES_DIR, etc.
"""

from pathlib import Path
from typing import Optional, Union

# Markers to detect project root (in priority order)
ROOT_MARKERS = [".project-root", "pyproject.toml", ".git"]


def find_project_root(start_path: Optional[Path] = None) -> Path:
    """
    Find the project root by searching upward for marker files.

    Args:
        start_path: Starting directory for search. Defaults to this file's location.

    Returns:
        Path to project root directory.

    Raises:
        FileNotFoundError: If no root marker is found.
    """
    if start_path is None:
        start_path = Path(__file__).resolve().parent

    current = start_path

    while current != current.parent:
        for marker in ROOT_MARKERS:
            if (current / marker).exists():
                return current
        current = current.parent

    for marker in ROOT_MARKERS:
        if (current / marker).exists():
            return current

    raise FileNotFoundError(
        f"Could not find project root. Searched for markers {ROOT_MARKERS} "
        f"starting from {start_path}"
    )


# =============================================================================
# Canonical paths (resolved at import time)
# =============================================================================

PROJECT_ROOT = find_project_root()

CONFIG_DIR = PROJECT_ROOT / "configs"

DATA_DIR = PROJECT_ROOT / "data"
RAW_DIR = DATA_DIR / "raw"
PROCESSED_DIR = DATA_DIR / "processed"

LOGS_DIR = PROJECT_ROOT / "logs"

REPORTS_DIR = PROJECT_ROOT / "reports"
FIGURES_DIR = REPORTS_DIR / "figures"

TESTS_DIR = PROJECT_ROOT / "tests"


def ensure_dirs_exist() -> None:
    """Create all canonical directories if they don't exist."""
    for d in [CONFIG_DIR, RAW_DIR, PROCESSED_DIR, LOGS_DIR, FIGURES_DIR]:
        d.mkdir(parents=True, exist_ok=True)


def is_remote(source: Union[str, Path]) -> bool:
    """True if the source is an http(s) URL rather than a filesystem path."""
    return str(source).lower().startswith(("http://", "https://"))


def resolve_source(source: Union[str, Path]) -> Union[str, Path]:
    """
    Resolve a configured input location.

    URLs are returned unchanged; relative paths are anchored at PROJECT_ROOT.
    """
    if is_remote(source):
        return str(source)
    path = Path(source)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path


if __name__ == "__main__":
    print(f"PROJECT_ROOT:  {PROJECT_ROOT}")
    print(f"RAW_DIR:       {RAW_DIR}")
    print(f"PROCESSED_DIR: {PROCESSED_DIR}")
    print(f"FIGURES_DIR:   {FIGURES_DIR}")
    print(f"LOGS_DIR:      {LOGS_DIR}")
