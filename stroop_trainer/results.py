from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .cognitive_core import StimulusType, StroopPhase


@dataclass(frozen=True, slots=True)
class TypeTally:
    correct: int = 0
    incorrect: int = 0


@dataclass(frozen=True, slots=True)
class TypeBreakdown:
    congruent: TypeTally = TypeTally()
    incongruent: TypeTally = TypeTally()
    neutral: TypeTally = TypeTally()

    def for_type(self, stimulus_type: StimulusType) -> TypeTally:
        return getattr(self, stimulus_type.value)


@dataclass(frozen=True, slots=True)
class ActivityResult:
    """Persistable summary of one finished phase."""

    activity_id: int
    phase: StroopPhase
    correct_answers: int
    incorrect_answers: int
    duration_seconds: int
    breakdown: TypeBreakdown
    average_reaction_ms: float
    score: int = 0

    @property
    def total_attempts(self) -> int:
        return self.correct_answers + self.incorrect_answers

    @property
    def accuracy(self) -> float:
        attempts = self.total_attempts
        return 0.0 if attempts == 0 else self.correct_answers / attempts

    def details(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for stype in StimulusType:
            tally = self.breakdown.for_type(stype)
            out[stype.value] = {"correct": tally.correct, "incorrect": tally.incorrect}
        out["avg_reaction_ms"] = self.average_reaction_ms
        return out
