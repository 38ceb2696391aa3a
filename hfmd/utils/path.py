"""
Utilities for config locations, repository ids and destination paths.
"""

import os
import re
from pathlib import Path

from pathvalidate import sanitize_filename

_REPO_ID_PATTERN = re.compile(r"^[\w.-]+(?:/[\w.-]+)?$")
_HUB_URL_PATTERN = re.compile(
    r"^https?://(?:www\.)?(?:huggingface\.co|hf\.co)/"
    r"(?P<datasets>datasets/)?(?P<repo>[\w.-]+/[\w.-]+)"
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "hfmd"


def parse_repo_ref(value: str) -> tuple[str, bool] | None:
    """
    Accepts `org/name` or a hub URL and returns (repo_id, is_dataset).

    The dataset flag is only True when a URL says so explicitly.
    """
    value = value.strip().rstrip("/")
    if match := _HUB_URL_PATTERN.match(value):
        return match.group("repo"), bool(match.group("datasets"))
    if _REPO_ID_PATTERN.match(value) and ".." not in value:
        return value, False
    return None


def default_destination(output_dir: str | Path, repo_id: str) -> Path:
    """`<output_dir>/<org>/<name>`, each component made filesystem-safe."""
    parts = [sanitize_filename(p, platform="auto") for p in repo_id.split("/")]
    return Path(output_dir).expanduser().joinpath(*[p for p in parts if p])


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)
