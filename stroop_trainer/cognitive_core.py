from __future__ import annotations

import random
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum


class StroopPhase(str, Enum):
    WORD = "word"
    COLOR = "color"


class PhaseState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"


class SessionStage(str, Enum):
    WORD_PHASE = "word_phase"
    COLOR_PHASE = "color_phase"
    COMPLETE = "complete"
    ALREADY_COMPLETE = "already_complete"


class StimulusType(str, Enum):
    CONGRUENT = "congruent"
    INCONGRUENT = "incongruent"
    NEUTRAL = "neutral"


@dataclass(frozen=True, slots=True)
class Stimulus:
    word: str
    display_attribute: str
    stimulus_type: StimulusType
    correct_answer: str
    presented_at_s: float


@dataclass(frozen=True, slots=True)
class AnswerEvent:
    selected: str
    is_correct: bool
    reaction_time_ms: float


def answer_event_for(stimulus: Stimulus, *, selected: str, answered_at_s: float) -> AnswerEvent:
    """Grade ``selected`` against the live stimulus (case-insensitive)."""

    is_correct = str(selected).strip().lower() == stimulus.correct_answer.strip().lower()
    reaction_ms = max(0.0, (answered_at_s - stimulus.presented_at_s) * 1000.0)
    return AnswerEvent(selected=str(selected), is_correct=is_correct, reaction_time_ms=reaction_ms)


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """View model for the UI (pure data)."""

    title: str
    stage: SessionStage
    phase: StroopPhase | None
    phase_state: PhaseState
    prompt: str
    time_remaining_s: int
    current_score: int
    stimulus: Stimulus | None
    options: tuple[str, ...]
    feedback: str | None = None
    error: str | None = None


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(int(seed))

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def choice(self, seq: Sequence[str]) -> str:
        return self._rng.choice(seq)

    def weighted_choice(self, seq: Sequence[StimulusType], weights: Sequence[float]) -> StimulusType:
        return self._rng.choices(seq, weights=weights, k=1)[0]
