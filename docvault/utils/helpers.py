"""Small helpers shared by the vault components."""
from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import orjson

_UNSAFE_ID_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


# --- Text ---------------------------------------------------------------------

def sanitize_id(name: str, max_len: int = 100) -> str:
    """Make a file name safe for use inside a record id ("a b.pdf" -> "a_b_pdf")."""
    return _UNSAFE_ID_CHARS.sub("_", name)[:max_len]


def truncate_text(text: str, max_chars: int = 300) -> str:
    """Shorten text for terminal display."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip() + "..."


# --- JSON files ---------------------------------------------------------------

def save_json(data: Any, path: str | Path) -> None:
    """
    Write data as indented JSON with orjson, via a sibling temp file that
    is renamed over the target.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(target.name + ".tmp")
    tmp.write_bytes(orjson.dumps(data, option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS))
    os.replace(tmp, target)


def load_json(path: str | Path) -> Any:
    return orjson.loads(Path(path).read_bytes())
