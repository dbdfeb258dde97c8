"""Token-budgeted admission of candidate files."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .logging import get_logger
from .models import CandidateFile

BYTES_PER_TOKEN = 4

logger = get_logger("budget")


def estimate_tokens(size_bytes: int) -> int:
    """Approximate token cost of ``size_bytes`` of text."""
    if size_bytes <= 0:
        return 0
    return math.ceil(size_bytes / BYTES_PER_TOKEN)


def estimate_text_tokens(text: str) -> int:
    return estimate_tokens(len(text.encode("utf-8")))


@dataclass
class PackResult:
    """Admitted candidates in selection order and rejects in evaluation order."""

    included: List[CandidateFile] = field(default_factory=list)
    excluded: List[CandidateFile] = field(default_factory=list)

    @property
    def included_tokens(self) -> int:
        return sum(candidate.estimated_tokens for candidate in self.included)


def pack(candidates: Sequence[CandidateFile], max_tokens: Optional[int]) -> PackResult:
    """Admit ``candidates`` into a budget of ``max_tokens`` estimated tokens.

    When everything fits (or no ceiling is set) the selection order is kept
    untouched. Otherwise candidates are considered by descending priority,
    ties broken by selection order. A candidate that could never fit the
    whole budget is skipped and evaluation continues; the first candidate
    that would fit an empty budget but not the remaining one closes
    admission. ``included`` is returned in selection order.
    """
    total = sum(candidate.estimated_tokens for candidate in candidates)
    if max_tokens is None or total <= max_tokens:
        return PackResult(included=list(candidates))

    logger.debug("Candidates need %d tokens; packing into %d", total, max_tokens)
    order = sorted(range(len(candidates)), key=lambda index: (-candidates[index].priority, index))
    remaining = max_tokens
    admitted: List[int] = []
    excluded: List[CandidateFile] = []
    closed = False
    for index in order:
        candidate = candidates[index]
        cost = candidate.estimated_tokens
        if closed:
            excluded.append(candidate)
            continue
        if cost > max_tokens:
            logger.debug("Skipping %s: %d tokens exceed the whole budget", candidate.relative_path, cost)
            excluded.append(candidate)
            continue
        if cost > remaining:
            logger.debug("Budget exhausted at %s (%d > %d remaining)", candidate.relative_path, cost, remaining)
            closed = True
            excluded.append(candidate)
            continue
        admitted.append(index)
        remaining -= cost

    admitted.sort()
    return PackResult(included=[candidates[index] for index in admitted], excluded=excluded)


__all__ = ["BYTES_PER_TOKEN", "PackResult", "estimate_text_tokens", "estimate_tokens", "pack"]
