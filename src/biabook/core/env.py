"""
Environment + project-root helpers.

Provider API keys usually live in a repo-local `.env`, and the API, CLI and the
catalog script are started from different working directories. Two env vars pin
things down when the markers below are not enough:
- `BIABOOK_PROJECT_ROOT`: the repo root itself
- `BIABOOK_ENV_FILE`: an explicit `.env` (its directory becomes the root)
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

# Any one of these marks a directory as the repo root.
_ROOT_MARKERS = (".env", ".git", "pyproject.toml")


def _is_project_root(path: Path) -> bool:
    if any((path / marker).exists() for marker in _ROOT_MARKERS):
        return True
    return (path / "src" / "biabook").is_dir() and (path / "data" / "catalogs").is_dir()


def _first_root_above(start: Path) -> Path | None:
    start = start.resolve()
    return next((p for p in (start, *start.parents) if _is_project_root(p)), None)


def _explicit_env_file() -> Path | None:
    raw = os.getenv("BIABOOK_ENV_FILE")
    return Path(raw).expanduser().resolve() if raw else None


@lru_cache
def get_project_root() -> Path:
    """Repo root: env override, then the working directory's ancestors, then the package's."""
    override = os.getenv("BIABOOK_PROJECT_ROOT")
    if override:
        return Path(override).expanduser().resolve()

    env_file = _explicit_env_file()
    if env_file is not None:
        return env_file.parent

    # An editable install started from elsewhere still finds the repo through __file__.
    found = _first_root_above(Path.cwd()) or _first_root_above(Path(__file__).parent)
    return found or Path.cwd().resolve()


@lru_cache
def load_dotenv_if_present() -> Path | None:
    """Load `.env` once (never overriding variables already set); returns its path or None."""
    from dotenv import load_dotenv

    env_path = _explicit_env_file() or get_project_root() / ".env"
    if not env_path.is_file():
        return None
    load_dotenv(dotenv_path=env_path, override=False)
    return env_path


def resolve_project_path(path: str | Path) -> Path:
    """Resolve catalog/cache paths; relative ones are taken from the project root."""
    candidate = Path(path).expanduser()
    return candidate if candidate.is_absolute() else (get_project_root() / candidate).resolve()
