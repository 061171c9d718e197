"""
`.env` loading and project-relative paths.

API keys for the tourism board and the language model are normally kept in a `.env`
next to the project. The guide is embedded from tests, notebooks and web backends
started in arbitrary directories, so the root is searched upward from the CWD.

`TOURGUIDE_ENV_FILE` points at an explicit env file; `TOURGUIDE_PROJECT_ROOT` pins the
root outright. Variables already set in the process always win over the file.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

_ROOT_MARKERS = (".env", ".git", "pyproject.toml")


@lru_cache
def get_project_root() -> Path:
    """Best-guess project root (cached for the process)."""
    pinned = os.getenv("TOURGUIDE_PROJECT_ROOT")
    if pinned:
        return Path(pinned).expanduser().resolve()

    env_file = os.getenv("TOURGUIDE_ENV_FILE")
    if env_file:
        return Path(env_file).expanduser().resolve().parent

    cwd = Path.cwd().resolve()
    for directory in (cwd, *cwd.parents):
        if any((directory / marker).exists() for marker in _ROOT_MARKERS):
            return directory
    return cwd


@lru_cache
def load_dotenv_if_present() -> Path | None:
    """Load the env file once; returns its path, or None when there is none."""
    explicit = os.getenv("TOURGUIDE_ENV_FILE")
    env_path = Path(explicit).expanduser().resolve() if explicit else get_project_root() / ".env"
    if not env_path.is_file():
        return None
    load_dotenv(dotenv_path=env_path, override=False)
    return env_path


def resolve_project_path(path: str | Path) -> Path:
    p = Path(path).expanduser()
    return p if p.is_absolute() else (get_project_root() / p).resolve()
