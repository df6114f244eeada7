#!/usr/bin/python
# coding: utf-8

import os
import re
import json
import tempfile
import logging
from datetime import datetime, timezone

from pathlib import Path
from typing import Any, Union, Tuple, Optional
import yaml

logger = logging.getLogger(__name__)

FRONTMATTER_PATTERN = re.compile(r"^---\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|$)", re.DOTALL)

# Sentinel returned by get_nested when a path does not resolve
MISSING = object()


def to_integer(string: Union[str, int] = None) -> int:
    if isinstance(string, int):
        return string
    if not string:
        return 0
    try:
        return int(string.strip())
    except ValueError:
        raise ValueError(f"Cannot convert '{string}' to integer")


def to_boolean(string: Union[str, bool] = None) -> bool:
    if isinstance(string, bool):
        return string
    if not string:
        return False
    normalized = str(string).strip().lower()
    true_values = {"t", "true", "y", "yes", "1"}
    false_values = {"f", "false", "n", "no", "0"}
    if normalized in true_values:
        return True
    elif normalized in false_values:
        return False
    else:
        raise ValueError(f"Cannot convert '{string}' to boolean")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def slugify(name: str) -> str:
    """Lowercase a free-form name into a dash separated slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", str(name).strip().lower())
    return slug.strip("-")


def get_nested(obj: Any, path: str, default: Any = MISSING) -> Any:
    """
    Resolve a dot separated path inside nested dictionaries.

    Args:
        obj (Any): The document to walk, usually a parsed project.json.
        path (str): Dot notation path, e.g. "apps.web.framework".
        default (Any, optional): Returned when any segment is missing.
            Defaults to the MISSING sentinel so callers can tell an absent
            key apart from an explicit null.

    Returns:
        Any: The value found at the path or the default.
    """
    if path is None or path == "":
        return obj
    current = obj
    for part in str(path).split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return default
    return current


def split_frontmatter(content: str) -> Tuple[Optional[dict], str]:
    """
    Split a markdown document into its YAML frontmatter and body.

    Returns:
        Tuple[Optional[dict], str]: The parsed frontmatter (None when the
            document has no frontmatter block) and the remaining body.

    Raises:
        ValueError: If the frontmatter block is not valid YAML or not a mapping.
    """
    if not content.startswith("---"):
        return None, content
    match = FRONTMATTER_PATTERN.match(content)
    if not match:
        return None, content
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Malformed frontmatter: {e}")
    if not isinstance(data, dict):
        raise ValueError("Frontmatter must be a mapping")
    return data, content[match.end() :]


def render_frontmatter(data: dict) -> str:
    """Serialize a mapping as a YAML frontmatter block, fences included."""
    dumped = yaml.safe_dump(data, sort_keys=False, allow_unicode=True, width=1000)
    return f"---\n{dumped}---\n"


def load_json_file(path: Union[str, Path], default: Any = None) -> Any:
    """Load a JSON document, returning the default when the file does not exist."""
    path = Path(path)
    if not path.is_file():
        return default
    with open(path, "r", encoding="utf-8") as json_file:
        return json.load(json_file)


def atomic_write_text(path: Union[str, Path], content: str) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.tmp.", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def atomic_write_json(path: Union[str, Path], data: Any) -> None:
    atomic_write_text(path, json.dumps(data, indent=2) + "\n")
