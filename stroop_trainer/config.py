from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .cognitive_core import StimulusType, StroopPhase

WORD_PHASE_ACTIVITY_ID = 5
COLOR_PHASE_ACTIVITY_ID = 6

DEFAULT_COLOR_OPTIONS = ("red", "blue", "green", "yellow")
DEFAULT_DURATION_S = 60
DEFAULT_SCORING = {
    "congruent_correct": 1,
    "incongruent_correct": 2,
    "neutral_correct": 1,
    "incorrect": -1,
}

_PHASE_BY_ACTIVITY_ID = {
    WORD_PHASE_ACTIVITY_ID: StroopPhase.WORD,
    COLOR_PHASE_ACTIVITY_ID: StroopPhase.COLOR,
}


class ConfigError(ValueError):
    """Raised for structurally invalid activity configuration."""


def word_meaning(word: str) -> str:
    return str(word).strip().lower()


@dataclass(frozen=True, slots=True)
class ScoringTable:
    """Score deltas keyed like ``congruent_correct`` / ``incorrect``.

    Every incorrect answer shares the single ``incorrect`` entry.
    """

    values: Mapping[str, int] = field(default_factory=dict)

    @staticmethod
    def key_for(stimulus_type: StimulusType, *, correct: bool) -> str:
        return f"{stimulus_type.value}_correct" if correct else "incorrect"

    def delta(self, stimulus_type: StimulusType, *, correct: bool) -> int | None:
        """Return the configured delta, or None when the entry is missing."""

        value = self.values.get(self.key_for(stimulus_type, correct=correct))
        return None if value is None else int(value)


@dataclass(frozen=True, slots=True)
class ActivityConfig:
    activity_id: int
    phase: StroopPhase
    name: str
    duration_seconds: int
    word_vocabulary: tuple[str, ...]
    attribute_vocabulary: tuple[str, ...]
    type_weights: tuple[tuple[StimulusType, float], ...]
    scoring: ScoringTable
    instructions: str = ""

    def __post_init__(self) -> None:
        if self.duration_seconds <= 0:
            raise ConfigError(f"{self.name}: duration_seconds must be > 0")
        if not self.word_vocabulary:
            raise ConfigError(f"{self.name}: word vocabulary is empty")
        if not self.attribute_vocabulary:
            raise ConfigError(f"{self.name}: attribute vocabulary is empty")
        if not self.type_weights or sum(w for _, w in self.type_weights) <= 0.0:
            raise ConfigError(f"{self.name}: stimulus type distribution is empty")
        if any(w < 0.0 for _, w in self.type_weights):
            raise ConfigError(f"{self.name}: stimulus type weights must be >= 0")

    def meanings(self) -> frozenset[str]:
        return frozenset(a.lower() for a in self.attribute_vocabulary)


def _parse_type_weights(raw: object, *, name: str) -> tuple[tuple[StimulusType, float], ...]:
    if isinstance(raw, Mapping):
        items = [(k, v) for k, v in raw.items()]
    elif isinstance(raw, (list, tuple)):
        items = [(k, 1.0) for k in raw]
    else:
        raise ConfigError(f"{name}: stimulus_types must be a list or mapping")

    weights: dict[StimulusType, float] = {}
    for key, weight in items:
        try:
            stype = StimulusType(str(key).strip().lower())
        except ValueError:
            raise ConfigError(f"{name}: unknown stimulus type {key!r}") from None
        weights[stype] = weights.get(stype, 0.0) + float(weight)
    return tuple(weights.items())


def activity_config_from_record(record: Mapping[str, Any], *, phase: StroopPhase | None = None) -> ActivityConfig:
    """Build an ActivityConfig from an activity row (``details`` holds the Stroop settings)."""

    try:
        activity_id = int(record["id"])
    except (KeyError, TypeError, ValueError):
        raise ConfigError("activity record needs an integer 'id'") from None

    name = str(record.get("name") or f"Activity {activity_id}")
    if phase is None:
        raw_phase = record.get("phase")
        if raw_phase is not None:
            try:
                phase = StroopPhase(str(raw_phase).strip().lower())
            except ValueError:
                raise ConfigError(f"{name}: unknown phase {raw_phase!r}") from None
        elif activity_id in _PHASE_BY_ACTIVITY_ID:
            phase = _PHASE_BY_ACTIVITY_ID[activity_id]
        else:
            raise ConfigError(f"{name}: cannot tell which Stroop phase this activity is")

    details = record.get("details") or {}
    if not isinstance(details, Mapping):
        raise ConfigError(f"{name}: 'details' must be an object")

    colors = tuple(str(c).strip().lower() for c in details.get("color_options") or () if str(c).strip())
    words = tuple(str(w).strip() for w in details.get("words") or () if str(w).strip())
    if not words:
        words = tuple(c.capitalize() for c in colors)

    scoring_raw = details.get("scoring") or {}
    if not isinstance(scoring_raw, Mapping):
        raise ConfigError(f"{name}: 'scoring' must be an object")

    return ActivityConfig(
        activity_id=activity_id,
        phase=phase,
        name=name,
        duration_seconds=int(record.get("duration_seconds") or 0),
        word_vocabulary=words,
        attribute_vocabulary=colors,
        type_weights=_parse_type_weights(details.get("stimulus_types") or [], name=name),
        scoring=ScoringTable({str(k): int(v) for k, v in scoring_raw.items()}),
        instructions=str(record.get("instructions") or ""),
    )


def _default_record(*, activity_id: int, name: str, instructions: str) -> dict[str, Any]:
    return {
        "id": activity_id,
        "name": name,
        "duration_seconds": DEFAULT_DURATION_S,
        "instructions": instructions,
        "details": {
            "color_options": list(DEFAULT_COLOR_OPTIONS),
            "stimulus_types": [t.value for t in StimulusType],
            "scoring": dict(DEFAULT_SCORING),
        },
    }


def default_activity_configs() -> dict[StroopPhase, ActivityConfig]:
    return {
        StroopPhase.WORD: activity_config_from_record(
            _default_record(
                activity_id=WORD_PHASE_ACTIVITY_ID,
                name="Stroop - Word Phase",
                instructions="Select the meaning of the printed word, ignoring its colour.",
            )
        ),
        StroopPhase.COLOR: activity_config_from_record(
            _default_record(
                activity_id=COLOR_PHASE_ACTIVITY_ID,
                name="Stroop - Color Phase",
                instructions="Select the colour the word is printed in, ignoring what it says.",
            )
        ),
    }


def load_activity_configs(path: Path) -> dict[StroopPhase, ActivityConfig]:
    """Load a JSON list of activity records; both phases must be present."""

    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"cannot read activity file {path}: {exc}") from exc
    if isinstance(payload, Mapping):
        payload = payload.get("activities")
    if not isinstance(payload, list):
        raise ConfigError(f"{path}: expected a list of activities")

    configs: dict[StroopPhase, ActivityConfig] = {}
    for item in payload:
        if not isinstance(item, Mapping):
            raise ConfigError(f"{path}: activity entries must be objects")
        cfg = activity_config_from_record(item)
        configs[cfg.phase] = cfg

    missing = [p.value for p in StroopPhase if p not in configs]
    if missing:
        raise ConfigError(f"{path}: missing phase config for {', '.join(missing)}")
    return configs
