from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .cognitive_core import AnswerEvent, Stimulus, StimulusType, StroopPhase
from .config import ScoringTable
from .results import ActivityResult, TypeBreakdown, TypeTally

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PhaseStats:
    correct_by_type: dict[StimulusType, int] = field(default_factory=lambda: {t: 0 for t in StimulusType})
    incorrect_by_type: dict[StimulusType, int] = field(default_factory=lambda: {t: 0 for t in StimulusType})
    correct_answers: int = 0
    incorrect_answers: int = 0
    reaction_times_ms: list[float] = field(default_factory=list)


def mean_reaction_ms(reaction_times_ms: list[float]) -> float:
    if not reaction_times_ms:
        return 0.0
    return float(sum(reaction_times_ms)) / float(len(reaction_times_ms))


class ScoreAggregator:
    """Single writer of PhaseStats and the running score for one phase."""

    def __init__(self, scoring: ScoringTable) -> None:
        self._scoring = scoring
        self._stats = PhaseStats()
        self._score = 0
        self._accepting = False
        self._missing_lookups = 0
        self._warned_keys: set[str] = set()

    @property
    def stats(self) -> PhaseStats:
        return self._stats

    @property
    def score(self) -> int:
        return self._score

    @property
    def accepting(self) -> bool:
        return self._accepting

    @property
    def missing_lookups(self) -> int:
        return self._missing_lookups

    def reset(self, scoring: ScoringTable | None = None) -> None:
        if scoring is not None:
            self._scoring = scoring
        self._stats = PhaseStats()
        self._score = 0

    def open(self) -> None:
        self._accepting = True

    def close(self) -> None:
        self._accepting = False

    def record(self, stimulus: Stimulus, answer: AnswerEvent) -> None:
        if not self._accepting:
            logger.debug("answer %r ignored: aggregator closed", answer.selected)
            return

        stype = stimulus.stimulus_type
        stats = self._stats
        if answer.is_correct:
            stats.correct_answers += 1
            stats.correct_by_type[stype] += 1
        else:
            stats.incorrect_answers += 1
            stats.incorrect_by_type[stype] += 1
        stats.reaction_times_ms.append(float(answer.reaction_time_ms))

        delta = self._scoring.delta(stype, correct=answer.is_correct)
        if delta is None:
            self._missing_lookups += 1
            key = ScoringTable.key_for(stype, correct=answer.is_correct)
            if key not in self._warned_keys:
                self._warned_keys.add(key)
                logger.warning("scoring table has no %r entry; using 0", key)
            delta = 0
        self._score += delta

    def finalize(self, *, activity_id: int, phase: StroopPhase, duration_seconds: int) -> ActivityResult:
        stats = self._stats
        breakdown = TypeBreakdown(
            **{
                t.value: TypeTally(correct=stats.correct_by_type[t], incorrect=stats.incorrect_by_type[t])
                for t in StimulusType
            }
        )
        return ActivityResult(
            activity_id=int(activity_id),
            phase=phase,
            correct_answers=stats.correct_answers,
            incorrect_answers=stats.incorrect_answers,
            duration_seconds=int(duration_seconds),
            breakdown=breakdown,
            average_reaction_ms=mean_reaction_ms(stats.reaction_times_ms),
            score=self._score,
        )
