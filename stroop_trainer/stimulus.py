from __future__ import annotations

import logging

from .clock import Clock
from .cognitive_core import SeededRng, Stimulus, StimulusType, StroopPhase
from .config import ActivityConfig, word_meaning

logger = logging.getLogger(__name__)

MAX_INCONGRUENT_RESAMPLES = 10


def classify_stimulus(word: str, display_attribute: str, *, meanings: frozenset[str]) -> StimulusType:
    """Classify the realized word/attribute pair.

    Words whose meaning is not itself one of the attributes are neutral.
    """

    meaning = word_meaning(word)
    if meaning == display_attribute.lower():
        return StimulusType.CONGRUENT
    if meaning in meanings:
        return StimulusType.INCONGRUENT
    return StimulusType.NEUTRAL


class StimulusGenerator:
    """Deterministic generator of Stroop stimuli."""

    def __init__(self, rng: SeededRng, clock: Clock) -> None:
        self._rng = rng
        self._clock = clock
        self._unresolved = 0

    @property
    def unresolved_count(self) -> int:
        """Incongruent targets that stayed congruent after the resample bound."""
        return self._unresolved

    def next(self, phase: StroopPhase, config: ActivityConfig) -> Stimulus:
        word = self._rng.choice(config.word_vocabulary)
        attribute = self._rng.choice(config.attribute_vocabulary)
        kinds = [k for k, _ in config.type_weights]
        weights = [w for _, w in config.type_weights]
        target = self._rng.weighted_choice(kinds, weights)

        meaning = word_meaning(word)
        if target is StimulusType.INCONGRUENT:
            attempts = 0
            while attribute.lower() == meaning and attempts < MAX_INCONGRUENT_RESAMPLES:
                attribute = self._rng.choice(config.attribute_vocabulary)
                attempts += 1
            if attribute.lower() == meaning:
                self._unresolved += 1
                logger.debug("incongruent resample exhausted for %r; keeping %r", word, attribute)
        elif target is StimulusType.CONGRUENT:
            forced = next((a for a in config.attribute_vocabulary if a.lower() == meaning), None)
            if forced is None:
                logger.debug("no attribute matches %r; congruent target left as %r", word, attribute)
            else:
                attribute = forced

        correct = meaning if phase is StroopPhase.WORD else attribute.lower()
        return Stimulus(
            word=word,
            display_attribute=attribute,
            stimulus_type=classify_stimulus(word, attribute, meanings=config.meanings()),
            correct_answer=correct,
            presented_at_s=self._clock.now(),
        )
