from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from .clock import Clock, CountdownClock
from .cognitive_core import (
    PhaseState,
    SeededRng,
    SessionSnapshot,
    SessionStage,
    Stimulus,
    StroopPhase,
    answer_event_for,
)
from .config import ActivityConfig, ConfigError, default_activity_configs
from .results import ActivityResult
from .scoring import ScoreAggregator
from .stimulus import StimulusGenerator

logger = logging.getLogger(__name__)


class SubmissionError(Exception):
    """Raised by a ResultSubmitter when a result could not be stored."""


class CompletionCheckError(Exception):
    """Raised by a CompletionCheck when prior completions could not be read."""


@dataclass(frozen=True, slots=True)
class SubmitOutcome:
    ok: bool
    message: str = ""


class ResultSubmitter(Protocol):
    def submit(self, result: ActivityResult) -> SubmitOutcome:
        ...


class CompletionCheck(Protocol):
    def has_completed(self, activity_id: int) -> bool:
        ...


@dataclass(frozen=True, slots=True)
class SubmissionReport:
    ok: bool
    failed_phase: StroopPhase | None = None
    message: str = ""


# Events accepted by PhaseController.dispatch().


@dataclass(frozen=True, slots=True)
class StartPhase:
    pass


@dataclass(frozen=True, slots=True)
class Answer:
    selected: str


@dataclass(frozen=True, slots=True)
class Tick:
    token: int
    remaining: int


@dataclass(frozen=True, slots=True)
class Expired:
    token: int


@dataclass(frozen=True, slots=True)
class RetrySubmission:
    pass


@dataclass(frozen=True, slots=True)
class Teardown:
    pass


SessionEvent = StartPhase | Answer | Tick | Expired | RetrySubmission | Teardown


@dataclass(frozen=True, slots=True)
class SessionState:
    stage: SessionStage
    phase: StroopPhase | None
    phase_state: PhaseState
    remaining_seconds: int
    pending_word_result: ActivityResult | None
    pending_color_result: ActivityResult | None

    @property
    def running(self) -> bool:
        return self.phase_state is PhaseState.RUNNING

    @property
    def finished(self) -> bool:
        return self.phase_state is PhaseState.FINISHED


_STAGE_PHASE = {
    SessionStage.WORD_PHASE: StroopPhase.WORD,
    SessionStage.COLOR_PHASE: StroopPhase.COLOR,
}


class PhaseController:
    """Two-phase Stroop session: Word phase -> Color phase -> ordered submission.

    Every input (UI start/answer, countdown tick/expiry, retry, teardown) goes
    through ``dispatch``. Countdown callbacks carry the token of the start that
    armed them, so a stale expiry never touches a newer phase.
    """

    def __init__(
        self,
        *,
        configs: Mapping[StroopPhase, ActivityConfig],
        submitter: ResultSubmitter,
        completion: CompletionCheck,
        clock: Clock,
        seed: int,
        title: str = "Stroop Test",
    ) -> None:
        missing = [p.value for p in StroopPhase if p not in configs]
        if missing:
            raise ConfigError(f"missing phase config for {', '.join(missing)}")
        for phase, cfg in configs.items():
            if cfg.phase is not phase:
                raise ConfigError(f"{cfg.name}: configured for {cfg.phase.value}, registered as {phase.value}")

        self._title = title
        self._configs = dict(configs)
        self._submitter = submitter
        self._clock = clock
        self._seed = int(seed)

        self._countdown = CountdownClock(clock)
        self._generator = StimulusGenerator(SeededRng(self._seed), clock)
        self._aggregator = ScoreAggregator(self._configs[StroopPhase.WORD].scoring)

        self._phase_state = PhaseState.IDLE
        self._remaining = 0
        self._live: Stimulus | None = None
        self._token = 0
        self._closed = False
        self._feedback: str | None = None
        self._pending_word: ActivityResult | None = None
        self._pending_color: ActivityResult | None = None
        self._last_result: ActivityResult | None = None
        self._last_report: SubmissionReport | None = None
        self._report_seq = 0

        word_done = bool(completion.has_completed(self._configs[StroopPhase.WORD].activity_id))
        color_done = bool(completion.has_completed(self._configs[StroopPhase.COLOR].activity_id))
        if color_done:
            self._stage = SessionStage.ALREADY_COMPLETE
        elif word_done:
            self._stage = SessionStage.COLOR_PHASE
        else:
            self._stage = SessionStage.WORD_PHASE
        if self._stage is not SessionStage.ALREADY_COMPLETE:
            self._remaining = self._active_config().duration_seconds
        logger.info("session opened at %s (word done=%s, color done=%s)", self._stage.value, word_done, color_done)

    # Read-only observables

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def stage(self) -> SessionStage:
        return self._stage

    @property
    def phase(self) -> StroopPhase | None:
        return _STAGE_PHASE.get(self._stage)

    @property
    def phase_state(self) -> PhaseState:
        return self._phase_state

    @property
    def remaining_seconds(self) -> int:
        return self._remaining

    @property
    def current_score(self) -> int:
        return self._aggregator.score

    @property
    def live_stimulus(self) -> Stimulus | None:
        return self._live

    @property
    def feedback(self) -> str | None:
        return self._feedback

    @property
    def last_result(self) -> ActivityResult | None:
        return self._last_result

    @property
    def last_report(self) -> SubmissionReport | None:
        return self._last_report

    @property
    def unresolved_stimuli(self) -> int:
        return self._generator.unresolved_count

    @property
    def missing_scoring_lookups(self) -> int:
        return self._aggregator.missing_lookups

    @property
    def state(self) -> SessionState:
        return SessionState(
            stage=self._stage,
            phase=self.phase,
            phase_state=self._phase_state,
            remaining_seconds=self._remaining,
            pending_word_result=self._pending_word,
            pending_color_result=self._pending_color,
        )

    def config_for(self, phase: StroopPhase) -> ActivityConfig:
        return self._configs[phase]

    def answer_options(self) -> tuple[str, ...]:
        phase = self.phase
        if phase is None:
            return ()
        cfg = self._configs[phase]
        if phase is StroopPhase.WORD:
            return tuple(cfg.word_vocabulary)
        return tuple(a.capitalize() for a in cfg.attribute_vocabulary)

    def can_exit(self) -> bool:
        if self._phase_state is PhaseState.RUNNING:
            return False
        if self._phase_state is PhaseState.FINISHED and self._pending_color is not None:
            # Unsent results stay on screen until a retry succeeds.
            return False
        return True

    # Inputs

    def start(self) -> None:
        self.dispatch(StartPhase())

    def submit_answer(self, selected: str) -> bool:
        """Submit an answer for the live stimulus. Returns True if recorded."""

        before = self._aggregator.stats.correct_answers + self._aggregator.stats.incorrect_answers
        self.dispatch(Answer(str(selected)))
        after = self._aggregator.stats.correct_answers + self._aggregator.stats.incorrect_answers
        return after > before

    def update(self) -> SubmissionReport | None:
        """Advance the countdown; returns a submission report produced by this call, if any."""

        seq = self._report_seq
        if not self._closed:
            self._countdown.poll()
        return self._last_report if self._report_seq != seq else None

    def retry_submission(self) -> SubmissionReport | None:
        return self.dispatch(RetrySubmission())

    def close(self) -> None:
        self.dispatch(Teardown())

    def dispatch(self, event: SessionEvent) -> SubmissionReport | None:
        if self._closed:
            logger.debug("event %r ignored after teardown", event)
            return None

        report: SubmissionReport | None = None
        if isinstance(event, StartPhase):
            self._on_start()
        elif isinstance(event, Answer):
            self._on_answer(event.selected)
        elif isinstance(event, Tick):
            self._on_tick(event)
        elif isinstance(event, Expired):
            report = self._on_expired(event)
        elif isinstance(event, RetrySubmission):
            report = self._on_retry()
        elif isinstance(event, Teardown):
            self._on_teardown()
        else:
            raise TypeError(f"unsupported session event: {event!r}")

        if report is not None:
            self._last_report = report
            self._report_seq += 1
        return report

    # Transitions

    def _active_config(self) -> ActivityConfig:
        phase = self.phase
        assert phase is not None
        return self._configs[phase]

    def _on_start(self) -> None:
        if self.phase is None or self._phase_state is not PhaseState.IDLE:
            logger.debug("start ignored in %s/%s", self._stage.value, self._phase_state.value)
            return

        cfg = self._active_config()
        self._aggregator.reset(cfg.scoring)
        self._aggregator.open()
        self._feedback = None
        self._last_report = None
        self._phase_state = PhaseState.RUNNING
        self._remaining = cfg.duration_seconds
        self._live = self._generator.next(cfg.phase, cfg)

        self._token += 1
        token = self._token
        self._countdown.start(
            cfg.duration_seconds,
            on_tick=lambda remaining: self.dispatch(Tick(token, remaining)),
            on_expire=lambda: self.dispatch(Expired(token)),
        )
        logger.info("%s started (%ss)", cfg.name, cfg.duration_seconds)

    def _on_answer(self, selected: str) -> None:
        if self._phase_state is not PhaseState.RUNNING or self._live is None:
            logger.debug("answer %r ignored: phase not running", selected)
            return

        cfg = self._active_config()
        answer = answer_event_for(self._live, selected=selected, answered_at_s=self._clock.now())
        self._aggregator.record(self._live, answer)
        self._feedback = "Correct!" if answer.is_correct else "Incorrect!"
        self._live = self._generator.next(cfg.phase, cfg)

    def _on_tick(self, event: Tick) -> None:
        if event.token != self._token or self._phase_state is not PhaseState.RUNNING:
            return
        self._remaining = max(0, int(event.remaining))

    def _on_expired(self, event: Expired) -> SubmissionReport | None:
        if event.token != self._token or self._phase_state is not PhaseState.RUNNING:
            logger.debug("stale expiry (token %s, current %s) ignored", event.token, self._token)
            return None

        cfg = self._active_config()
        self._countdown.stop()
        self._aggregator.close()
        self._live = None
        self._remaining = 0
        self._phase_state = PhaseState.FINISHED

        result = self._aggregator.finalize(
            activity_id=cfg.activity_id,
            phase=cfg.phase,
            duration_seconds=cfg.duration_seconds,
        )
        self._last_result = result
        logger.info(
            "%s finished: %s correct, %s incorrect, score %s",
            cfg.name,
            result.correct_answers,
            result.incorrect_answers,
            result.score,
        )

        if cfg.phase is StroopPhase.WORD:
            self._pending_word = result
            self._stage = SessionStage.COLOR_PHASE
            self._phase_state = PhaseState.IDLE
            self._remaining = self._configs[StroopPhase.COLOR].duration_seconds
            return None

        self._pending_color = result
        return self._submit_pending()

    def _on_retry(self) -> SubmissionReport | None:
        if self._stage is not SessionStage.COLOR_PHASE or self._phase_state is not PhaseState.FINISHED:
            logger.debug("retry ignored in %s/%s", self._stage.value, self._phase_state.value)
            return None
        return self._submit_pending()

    def _on_teardown(self) -> None:
        self._countdown.stop()
        self._aggregator.close()
        self._token += 1
        self._live = None
        if self._phase_state is PhaseState.RUNNING:
            self._phase_state = PhaseState.FINISHED
        self._closed = True
        logger.debug("session torn down in %s/%s", self._stage.value, self._phase_state.value)

    # Submission

    def _submit_pending(self) -> SubmissionReport:
        if self._pending_word is not None:
            outcome = self._submit_one(self._pending_word)
            if not outcome.ok:
                return SubmissionReport(ok=False, failed_phase=StroopPhase.WORD, message=outcome.message)
            self._pending_word = None

        if self._pending_color is not None:
            outcome = self._submit_one(self._pending_color)
            if not outcome.ok:
                return SubmissionReport(ok=False, failed_phase=StroopPhase.COLOR, message=outcome.message)
            self._pending_color = None

        self._stage = SessionStage.COMPLETE
        logger.info("session complete")
        return SubmissionReport(ok=True, message="Test complete! Results submitted.")

    def _submit_one(self, result: ActivityResult) -> SubmitOutcome:
        try:
            outcome = self._submitter.submit(result)
        except SubmissionError as exc:
            outcome = SubmitOutcome(ok=False, message=str(exc))
        if not outcome.ok:
            logger.error("failed to save %s phase result: %s", result.phase.value, outcome.message)
        return outcome

    # View model

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            title=self._title,
            stage=self._stage,
            phase=self.phase,
            phase_state=self._phase_state,
            prompt=self._prompt_text(),
            time_remaining_s=self._remaining,
            current_score=self.current_score,
            stimulus=self._live,
            options=self.answer_options() if self._phase_state is PhaseState.RUNNING else (),
            feedback=self._feedback,
            error=None if self._last_report is None or self._last_report.ok else self._last_report.message,
        )

    def _prompt_text(self) -> str:
        if self._stage is SessionStage.ALREADY_COMPLETE:
            return "You have already completed both Stroop test phases."
        if self._stage is SessionStage.COMPLETE:
            return "Test complete! Results submitted."

        cfg = self._active_config()
        if self._phase_state is PhaseState.RUNNING:
            if cfg.phase is StroopPhase.WORD:
                return "What does the word say?"
            return "What colour is the word printed in?"
        if self._phase_state is PhaseState.FINISHED:
            report = self._last_report
            if report is not None and not report.ok:
                assert report.failed_phase is not None
                return f"Failed to save {report.failed_phase.value.capitalize()} Phase result: {report.message}"
            return "Submitting results..."

        lines = [cfg.name, ""]
        if cfg.phase is StroopPhase.COLOR and self._last_result is not None:
            lines = [f"Word Phase Complete! Your score: {self._last_result.score}", ""] + lines
        if cfg.instructions:
            lines.append(cfg.instructions)
        lines.append(f"Duration: {cfg.duration_seconds} seconds")
        return "\n".join(lines)


def build_stroop_session(
    *,
    clock: Clock,
    seed: int,
    submitter: ResultSubmitter,
    completion: CompletionCheck,
    configs: Mapping[StroopPhase, ActivityConfig] | None = None,
) -> PhaseController:
    return PhaseController(
        configs=default_activity_configs() if configs is None else configs,
        submitter=submitter,
        completion=completion,
        clock=clock,
        seed=seed,
    )
