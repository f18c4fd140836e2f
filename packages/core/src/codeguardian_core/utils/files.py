"""Read and write the hand-off artifacts each pipeline stage leaves behind."""

from __future__ import annotations

import json
from pathlib import Path


def read_text_if_exists(path: str | Path) -> str:
    p = Path(path)
    return p.read_text(encoding="utf-8") if p.exists() else ""


def read_json(path: str | Path, required: bool = True):
    p = Path(path)
    if not p.exists():
        if required:
            raise FileNotFoundError(f"Required file not found: {p}")
        return None
    return json.loads(p.read_text(encoding="utf-8"))


def write_text(path: str | Path, content: str) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8")
    return p


def write_json(path: str | Path, data, pretty: bool = True) -> Path:
    # Compact output uses the same separators every time so identical
    # payloads produce identical bytes.
    content = json.dumps(data, indent=2) if pretty else json.dumps(data, separators=(",", ":"))
    return write_text(path, content)
