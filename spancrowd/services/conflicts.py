"""Resolution of overlapping candidate entities."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from spancrowd.services.logs import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CandidateEntity:
    """An entity found in a sentence, before conflicts are resolved."""

    begin: int
    end: int
    label: str

    @property
    def length(self) -> int:
        return self.end - self.begin


class ConflictResolver:
    """
    Reduce candidates that may overlap to a non-overlapping set.

    This is a greedy single pass over candidates sorted by position.  When a
    candidate overlaps the last accepted one, the longer of the two wins and
    the shorter is dropped.  For equal lengths the one accepted first is
    kept.  This handles simple nesting; it does not find a maximum set of
    non-overlapping candidates for arbitrary overlap shapes.
    """

    def resolve(self, candidates: Iterable[CandidateEntity]) -> list[CandidateEntity]:
        """
        Resolve overlaps among candidates.

        Args:
            candidates: Candidates of one sentence, ordered by position

        Returns:
            The accepted candidates, in their original order

        """
        accepted: list[CandidateEntity] = []
        last: CandidateEntity | None = None
        for candidate in candidates:
            if last is None or candidate.begin > last.end:
                accepted.append(candidate)
                last = candidate
            elif candidate.length > last.length:
                logger.debug(
                    "nested entity replaces previous",
                    dropped=(last.begin, last.end),
                    kept=(candidate.begin, candidate.end),
                )
                accepted[-1] = candidate
                last = candidate
            else:
                logger.debug(
                    "nested entity ignored",
                    dropped=(candidate.begin, candidate.end),
                    kept=(last.begin, last.end),
                )
        return accepted
