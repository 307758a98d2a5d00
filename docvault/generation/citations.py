"""Parse `[Source: file, Page N]` badges out of generated answers."""
from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel

SOURCE_PATTERN = re.compile(r"\[Source:\s*([^\],]+)(?:,\s*Page\s*(\d+))?\]", re.IGNORECASE)


class ParsedSource(BaseModel):
    file_name: str
    page: Optional[int] = None


def parse_sources(content: str) -> list[ParsedSource]:
    """Unique sources in order of first mention."""
    sources: list[ParsedSource] = []
    seen: set[tuple[str, Optional[int]]] = set()
    for m in SOURCE_PATTERN.finditer(content):
        file_name = m.group(1).strip()
        page = int(m.group(2)) if m.group(2) else None
        if file_name and (file_name, page) not in seen:
            seen.add((file_name, page))
            sources.append(ParsedSource(file_name=file_name, page=page))
    return sources


def strip_sources(content: str) -> str:
    """Remove source badges so they can be rendered separately."""
    stripped = SOURCE_PATTERN.sub("", content)
    return re.sub(r"\n{3,}", "\n\n", stripped).strip()
