from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

ENV_FILE_VARIABLE = "DOUBAN_ENV_FILE"


def _env_file_candidates() -> list[Path]:
    explicit = (os.getenv(ENV_FILE_VARIABLE) or "").strip()
    if explicit:
        return [Path(explicit).expanduser()]
    repo_root = Path(__file__).resolve().parents[2]
    return [repo_root / ".env", Path.cwd() / ".env"]


def load_env(*, override: bool = False) -> Path | None:
    """
    Load settings from a dotenv file.

    `DOUBAN_ENV_FILE` pins the file; otherwise the repo root `.env` wins over the
    working directory one. Returns the loaded path, or None when nothing was found.
    """

    for path in _env_file_candidates():
        if path.is_file():
            load_dotenv(dotenv_path=path, override=override)
            return path
    return None
