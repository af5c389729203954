"""Token-budgeted prompt context, assembled from ranked sections in priority order."""

from __future__ import annotations

import logging
import unicodedata
from dataclasses import dataclass, field
from typing import Callable, Sequence, Union

from kore_companion.errors import InputInvalid
from kore_companion.models import MemoryRecord, RankedMemory

logger = logging.getLogger(__name__)

SectionItem = Union[str, MemoryRecord, RankedMemory]
SectionSource = Union[Sequence[SectionItem], Callable[[], Sequence[SectionItem]], None]

# Fixed priority order
SECTIONS = (
    ("world", "## World"),
    ("profiles", "## Characters"),
    ("relationships", "## Relationships"),
    ("memories", "## Memories"),
)


def estimate_tokens(text: str) -> int:
    """Rough count: wide (CJK) characters ~2 per token, everything else ~4."""
    wide = sum(1 for c in text if unicodedata.east_asian_width(c) in ("W", "F"))
    return wide // 2 + (len(text) - wide) // 4


def _render(item: SectionItem) -> str:
    if isinstance(item, RankedMemory):
        return item.memory.content
    if isinstance(item, MemoryRecord):
        return item.content
    return str(item)


@dataclass
class AssembledContext:
    text: str = ""
    tokens: int = 0
    included: dict[str, int] = field(default_factory=dict)
    skipped_sections: list[str] = field(default_factory=list)
    truncated: bool = False


class ContextBuilder:
    """Concatenates world, profiles, relationships and memories within a token budget.

    Items are added whole or not at all. Assembly stops at the first item
    that would overflow the budget. A section source that raises is logged
    and skipped: enrichment is optional, the rest of the context is not.
    """

    def __init__(self, max_tokens: int = 3000) -> None:
        if max_tokens <= 0:
            raise InputInvalid("max_tokens must be positive")
        self.max_tokens = max_tokens

    def assemble(self, world: SectionSource = None,
                 profiles: SectionSource = None,
                 relationships: SectionSource = None,
                 memories: SectionSource = None) -> AssembledContext:
        sources = {
            "world": world,
            "profiles": profiles,
            "relationships": relationships,
            "memories": memories,
        }
        result = AssembledContext()
        parts: list[str] = []

        for name, header in SECTIONS:
            items = self._resolve(name, sources[name], result)
            if not items:
                continue

            header_tokens = estimate_tokens(header + "\n")
            opened = False
            for item in items:
                line = _render(item).strip()
                if not line:
                    continue
                cost = estimate_tokens(line + "\n")
                if not opened:
                    cost += header_tokens
                if result.tokens + cost > self.max_tokens:
                    result.truncated = True
                    break
                if not opened:
                    parts.append(header)
                    opened = True
                parts.append(line)
                result.tokens += cost
                result.included[name] = result.included.get(name, 0) + 1
            if result.truncated:
                break

        result.text = "\n".join(parts)
        return result

    @staticmethod
    def _resolve(name: str, source: SectionSource,
                 result: AssembledContext) -> Sequence[SectionItem]:
        if source is None:
            return ()
        if not callable(source):
            return source
        try:
            return source() or ()
        except Exception as exc:
            logger.warning("skipping context section %s: %s", name, exc)
            result.skipped_sections.append(name)
            return ()
