# relnotes/core/inputs.py
"""
Reads the files a release-notes render needs: the template, the release data
(JSON) and optional custom helper source.
"""
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from relnotes.exceptions import InputError
from relnotes.util import strip_utf8_bom

log = structlog.get_logger(__name__)

# Each render argument and the data file keys that may carry it, preferred first.
DATA_KEYS: Dict[str, tuple] = {
    "work_items": ("workItems", "widetail"),
    "commits": ("commits", "csdetail"),
    "build_details": ("buildDetails",),
    "release_details": ("releaseDetails",),
    "compare_release_details": ("compareReleaseDetails",),
}


@dataclass
class ReleaseData:
    """The structured data a template is rendered against."""
    work_items: List[Any] = field(default_factory=list)
    commits: List[Any] = field(default_factory=list)
    build_details: Optional[Dict[str, Any]] = None
    release_details: Optional[Dict[str, Any]] = None
    compare_release_details: Optional[Dict[str, Any]] = None


def _read_text(path: Path, what: str) -> str:
    try:
        return strip_utf8_bom(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        raise InputError(f"Failed to read {what} file {path}: {e}") from e


def read_template_lines(path: Path) -> List[str]:
    """Splits the template file on newlines only, so rejoining reproduces it exactly."""
    text = _read_text(path, "template").replace("\r\n", "\n")
    lines = text.split("\n")
    log.info("template_loaded", path=str(path), lines=len(lines))
    return lines


def read_helper_source(path: Optional[Path]) -> Optional[str]:
    if path is None:
        return None
    source = _read_text(path, "custom helpers")
    log.info("custom_helper_source_loaded", path=str(path), characters=len(source))
    return source


def release_data_from_mapping(payload: Dict[str, Any]) -> ReleaseData:
    values: Dict[str, Any] = {}
    for attribute, keys in DATA_KEYS.items():
        for key in keys:
            if payload.get(key) is not None:
                values[attribute] = payload[key]
                break
    for attribute in ("work_items", "commits"):
        if attribute in values and not isinstance(values[attribute], list):
            raise InputError(f"'{DATA_KEYS[attribute][0]}' must be a list, got {type(values[attribute]).__name__}")
    return ReleaseData(**values)


def load_release_data(path: Optional[Path]) -> ReleaseData:
    """Loads release data from a JSON object; no file means empty data."""
    if path is None:
        return ReleaseData()
    try:
        payload = json.loads(_read_text(path, "data"))
    except json.JSONDecodeError as e:
        raise InputError(f"Data file {path} is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise InputError(f"Data file {path} must contain a JSON object, got {type(payload).__name__}")
    data = release_data_from_mapping(payload)
    log.info("release_data_loaded", path=str(path), work_items=len(data.work_items), commits=len(data.commits))
    return data
