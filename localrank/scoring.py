"""Weighted-reason scoring shared by the lead and match scorers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

MIN_SCORE = 0
MAX_SCORE = 100


@dataclass(frozen=True)
class Reason:
    code: str
    message: str
    weight: int


@dataclass
class ScoreResult:
    score: int
    reasons: List[Reason] = field(default_factory=list)

    @property
    def messages(self) -> List[str]:
        return [r.message for r in self.reasons]

    @property
    def codes(self) -> List[str]:
        return [r.code for r in self.reasons]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "reasons": [
                {"code": r.code, "message": r.message, "weight": r.weight} for r in self.reasons
            ],
        }


def clamp_score(value: float) -> int:
    return int(max(MIN_SCORE, min(MAX_SCORE, value)))


class ReasonTally:
    """Running total plus the reasons that produced it, in evaluation order."""

    def __init__(self, base: int) -> None:
        self.total = base
        self.reasons: List[Reason] = []

    def add(self, code: str, message: str, weight: int) -> None:
        self.total += weight
        self.reasons.append(Reason(code, message, weight))

    def result(self, sort_by_weight: bool = False) -> ScoreResult:
        reasons = list(self.reasons)
        if sort_by_weight:
            reasons.sort(key=lambda r: -r.weight)
        return ScoreResult(score=clamp_score(self.total), reasons=reasons)
