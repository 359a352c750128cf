"""File-backed document helpers used when MongoDB is not configured."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable

LOGGER = logging.getLogger(__name__)


def read_documents(path: Path) -> list[dict[str, Any]]:
    """Read a JSON array of documents, treating a missing or corrupt file as empty."""
    if not path.exists():
        return []
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        LOGGER.warning("json_store_unreadable", extra={"path": str(path)})
        return []
    if not isinstance(payload, list):
        return []
    return [row for row in payload if isinstance(row, dict)]


def write_documents(path: Path, documents: list[dict[str, Any]]) -> None:
    """Replace the JSON array stored at ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(
        json.dumps(documents, ensure_ascii=False, indent=2, default=str),
        encoding="utf-8",
    )
    tmp_path.replace(path)


def append_documents_jsonl(path: Path, documents: Iterable[dict[str, Any]]) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with path.open("a", encoding="utf-8") as fh:
        for doc in documents:
            fh.write(json.dumps(doc, ensure_ascii=False, default=str) + "\n")
            count += 1
    return count


def read_documents_jsonl(path: Path) -> list[dict[str, Any]]:
    """Read one document per line, skipping lines that are not JSON objects."""
    if not path.exists():
        return []
    docs: list[dict[str, Any]] = []
    with path.open("r", encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if not line:
                continue
            try:
                doc = json.loads(line)
            except ValueError:
                doc = None
            if not isinstance(doc, dict):
                LOGGER.warning("json_store_unreadable_line", extra={"path": str(path)})
                continue
            docs.append(doc)
    return docs
