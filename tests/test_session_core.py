from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from stroop_trainer.cognitive_core import PhaseState, SessionStage, StimulusType, StroopPhase
from stroop_trainer.config import ActivityConfig, ConfigError, ScoringTable
from stroop_trainer.results import ActivityResult
from stroop_trainer.session import (
    Expired,
    PhaseController,
    SubmissionError,
    SubmitOutcome,
    Tick,
)

COLORS = ("red", "blue", "green", "yellow")
WORDS = ("Red", "Blue", "Green", "Yellow")


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


@dataclass
class FakeSubmitter:
    fail_phases: set[StroopPhase] = field(default_factory=set)
    raise_phases: set[StroopPhase] = field(default_factory=set)
    attempts: list[ActivityResult] = field(default_factory=list)
    saved: list[ActivityResult] = field(default_factory=list)

    def submit(self, result: ActivityResult) -> SubmitOutcome:
        self.attempts.append(result)
        if result.phase in self.raise_phases:
            raise SubmissionError("database unavailable")
        if result.phase in self.fail_phases:
            return SubmitOutcome(ok=False, message="insert rejected")
        self.saved.append(result)
        return SubmitOutcome(ok=True)


@dataclass
class FakeCompletion:
    done: set[int] = field(default_factory=set)
    queries: list[int] = field(default_factory=list)

    def has_completed(self, activity_id: int) -> bool:
        self.queries.append(activity_id)
        return activity_id in self.done


def make_configs(
    *,
    duration: int = 10,
    weights: dict[StimulusType, float] | None = None,
    scoring: dict[str, int] | None = None,
) -> dict[StroopPhase, ActivityConfig]:
    w = weights if weights is not None else {StimulusType.CONGRUENT: 1.0}
    s = scoring if scoring is not None else {"congruent_correct": 1, "incongruent_correct": 2, "incorrect": -1}
    return {
        phase: ActivityConfig(
            activity_id=5 if phase is StroopPhase.WORD else 6,
            phase=phase,
            name=f"Stroop - {phase.value.capitalize()} Phase",
            duration_seconds=duration,
            word_vocabulary=WORDS,
            attribute_vocabulary=COLORS,
            type_weights=tuple(w.items()),
            scoring=ScoringTable(dict(s)),
        )
        for phase in StroopPhase
    }


def make_session(
    *,
    clock: FakeClock,
    submitter: FakeSubmitter | None = None,
    completion: FakeCompletion | None = None,
    **kwargs: object,
) -> PhaseController:
    return PhaseController(
        configs=make_configs(**kwargs),  # type: ignore[arg-type]
        submitter=submitter if submitter is not None else FakeSubmitter(),
        completion=completion if completion is not None else FakeCompletion(),
        clock=clock,
        seed=2024,
    )


def answer_correctly(engine: PhaseController, clock: FakeClock, n: int, dt: float = 0.2) -> None:
    for _ in range(n):
        clock.advance(dt)
        live = engine.live_stimulus
        assert live is not None
        assert engine.submit_answer(live.correct_answer) is True


def run_phase(engine: PhaseController, clock: FakeClock, *, correct: int = 2) -> None:
    engine.start()
    answer_correctly(engine, clock, correct)
    clock.advance(engine.config_for(engine.phase).duration_seconds)  # type: ignore[arg-type]
    engine.update()


def test_initial_state_is_idle_word_phase() -> None:
    completion = FakeCompletion()
    engine = make_session(clock=FakeClock(), completion=completion)

    assert engine.stage is SessionStage.WORD_PHASE
    assert engine.phase is StroopPhase.WORD
    assert engine.phase_state is PhaseState.IDLE
    assert engine.live_stimulus is None
    assert engine.remaining_seconds == 10
    assert sorted(completion.queries) == [5, 6]


def test_three_correct_congruent_answers_then_expiry() -> None:
    clock = FakeClock()
    engine = make_session(clock=clock)

    engine.start()
    assert engine.phase_state is PhaseState.RUNNING
    answer_correctly(engine, clock, 3)
    assert engine.current_score == 3

    clock.advance(10.0)
    engine.update()

    result = engine.state.pending_word_result
    assert result is not None
    assert result.correct_answers == 3
    assert result.incorrect_answers == 0
    assert result.breakdown.congruent.correct == 3
    assert result.duration_seconds == 10
    assert result.average_reaction_ms == pytest.approx(200.0)
    assert engine.stage is SessionStage.COLOR_PHASE
    assert engine.phase_state is PhaseState.IDLE


def test_ticks_update_remaining_seconds() -> None:
    clock = FakeClock()
    engine = make_session(clock=clock)
    engine.start()

    clock.advance(3.0)
    engine.update()

    assert engine.remaining_seconds == 7
    assert engine.phase_state is PhaseState.RUNNING


def test_wrong_answer_uses_shared_penalty_and_feedback() -> None:
    clock = FakeClock()
    engine = make_session(clock=clock)
    engine.start()
    live = engine.live_stimulus
    assert live is not None

    wrong = next(c for c in COLORS if c != live.correct_answer)
    assert engine.submit_answer(wrong) is True

    assert engine.current_score == -1
    assert engine.feedback == "Incorrect!"
    assert engine.live_stimulus is not None


def test_answers_are_case_insensitive() -> None:
    clock = FakeClock()
    engine = make_session(clock=clock)
    engine.start()
    live = engine.live_stimulus
    assert live is not None

    engine.submit_answer(live.correct_answer.upper())

    assert engine.feedback == "Correct!"
    assert engine.current_score == 1


def test_answer_while_not_running_is_noop() -> None:
    clock = FakeClock()
    engine = make_session(clock=clock)

    assert engine.submit_answer("red") is False
    assert engine.current_score == 0
    assert engine.phase_state is PhaseState.IDLE


def test_answer_between_phases_is_noop() -> None:
    clock = FakeClock()
    submitter = FakeSubmitter()
    engine = make_session(clock=clock, submitter=submitter)
    run_phase(engine, clock, correct=3)
    assert engine.stage is SessionStage.COLOR_PHASE
    assert engine.phase_state is PhaseState.IDLE

    assert engine.submit_answer("red") is False

    assert engine.live_stimulus is None
    assert engine.state.pending_word_result is not None
    assert engine.state.pending_word_result.correct_answers == 3
    assert engine.state.pending_word_result.incorrect_answers == 0


def test_answer_after_session_complete_is_noop() -> None:
    clock = FakeClock()
    submitter = FakeSubmitter()
    engine = make_session(clock=clock, submitter=submitter)
    run_phase(engine, clock)
    run_phase(engine, clock, correct=4)
    assert engine.stage is SessionStage.COMPLETE
    score = engine.current_score

    assert engine.submit_answer("red") is False
    assert engine.submit_answer("blue") is False

    assert engine.phase_state is PhaseState.FINISHED
    assert engine.current_score == score
    assert [r.correct_answers for r in submitter.saved] == [2, 4]
    assert [r.incorrect_answers for r in submitter.saved] == [0, 0]


def test_second_start_while_running_is_noop() -> None:
    clock = FakeClock()
    engine = make_session(clock=clock)
    engine.start()
    live = engine.live_stimulus

    clock.advance(2.0)
    engine.update()
    engine.start()

    assert engine.live_stimulus is live
    assert engine.remaining_seconds == 8


def test_stale_expiry_token_is_ignored() -> None:
    clock = FakeClock()
    engine = make_session(clock=clock)
    engine.start()

    assert engine.dispatch(Expired(token=-1)) is None
    engine.dispatch(Tick(token=-1, remaining=0))

    assert engine.phase_state is PhaseState.RUNNING
    assert engine.remaining_seconds == 10


def test_teardown_stops_clock_and_ignores_later_events() -> None:
    clock = FakeClock()
    submitter = FakeSubmitter()
    engine = make_session(clock=clock, submitter=submitter)
    engine.start()

    engine.close()
    clock.advance(60.0)
    assert engine.update() is None
    assert engine.submit_answer("red") is False

    assert engine.phase_state is PhaseState.FINISHED
    assert engine.state.running is False
    assert engine.live_stimulus is None
    assert engine.stage is SessionStage.WORD_PHASE
    assert engine.state.pending_word_result is None
    assert submitter.attempts == []


def test_full_session_submits_word_then_color() -> None:
    clock = FakeClock()
    submitter = FakeSubmitter()
    engine = make_session(clock=clock, submitter=submitter)

    run_phase(engine, clock, correct=2)
    assert submitter.attempts == []

    engine.start()
    assert engine.phase is StroopPhase.COLOR
    answer_correctly(engine, clock, 4)
    clock.advance(10.0)
    report = engine.update()

    assert report is not None and report.ok
    assert engine.stage is SessionStage.COMPLETE
    assert [r.phase for r in submitter.saved] == [StroopPhase.WORD, StroopPhase.COLOR]
    assert [r.correct_answers for r in submitter.saved] == [2, 4]
    assert engine.state.pending_word_result is None
    assert engine.state.pending_color_result is None


def test_word_submission_failure_halts_before_color() -> None:
    clock = FakeClock()
    submitter = FakeSubmitter(fail_phases={StroopPhase.WORD})
    engine = make_session(clock=clock, submitter=submitter)

    run_phase(engine, clock)
    run_phase(engine, clock)
    report = engine.last_report

    assert report is not None
    assert report.ok is False
    assert report.failed_phase is StroopPhase.WORD
    assert engine.stage is not SessionStage.COMPLETE
    assert engine.phase_state is PhaseState.FINISHED
    assert engine.state.pending_word_result is not None
    assert engine.state.pending_color_result is not None
    assert [r.phase for r in submitter.attempts] == [StroopPhase.WORD]
    assert engine.snapshot().error == "insert rejected"


def test_exit_blocked_until_failed_results_are_saved() -> None:
    clock = FakeClock()
    submitter = FakeSubmitter(fail_phases={StroopPhase.WORD})
    engine = make_session(clock=clock, submitter=submitter)
    assert engine.can_exit() is True

    engine.start()
    assert engine.can_exit() is False
    clock.advance(10.0)
    engine.update()
    run_phase(engine, clock)

    assert engine.last_report is not None and engine.last_report.ok is False
    assert engine.can_exit() is False

    submitter.fail_phases.clear()
    engine.retry_submission()

    assert engine.stage is SessionStage.COMPLETE
    assert engine.can_exit() is True


def test_retry_resends_pending_results_in_order() -> None:
    clock = FakeClock()
    submitter = FakeSubmitter(fail_phases={StroopPhase.WORD})
    engine = make_session(clock=clock, submitter=submitter)
    run_phase(engine, clock)
    run_phase(engine, clock)

    submitter.fail_phases.clear()
    report = engine.retry_submission()

    assert report is not None and report.ok
    assert engine.stage is SessionStage.COMPLETE
    assert [r.phase for r in submitter.saved] == [StroopPhase.WORD, StroopPhase.COLOR]


def test_color_submission_failure_keeps_color_result_only() -> None:
    clock = FakeClock()
    submitter = FakeSubmitter(raise_phases={StroopPhase.COLOR})
    engine = make_session(clock=clock, submitter=submitter)
    run_phase(engine, clock)
    run_phase(engine, clock)

    report = engine.last_report
    assert report is not None
    assert report.failed_phase is StroopPhase.COLOR
    assert report.message == "database unavailable"
    assert engine.state.pending_word_result is None
    assert engine.state.pending_color_result is not None

    submitter.raise_phases.clear()
    engine.retry_submission()

    assert engine.stage is SessionStage.COMPLETE
    assert [r.phase for r in submitter.saved] == [StroopPhase.WORD, StroopPhase.COLOR]


def test_retry_outside_failed_submission_is_noop() -> None:
    engine = make_session(clock=FakeClock())
    assert engine.retry_submission() is None
    assert engine.stage is SessionStage.WORD_PHASE


def test_completed_word_phase_skips_to_color() -> None:
    clock = FakeClock()
    submitter = FakeSubmitter()
    engine = make_session(clock=clock, submitter=submitter, completion=FakeCompletion(done={5}))

    assert engine.stage is SessionStage.COLOR_PHASE
    assert engine.phase is StroopPhase.COLOR

    engine.start()
    live = engine.live_stimulus
    assert live is not None
    assert live.correct_answer == live.display_attribute

    clock.advance(10.0)
    engine.update()

    assert engine.stage is SessionStage.COMPLETE
    assert [r.phase for r in submitter.saved] == [StroopPhase.COLOR]


@pytest.mark.parametrize("done", [{5, 6}, {6}])
def test_completed_color_phase_routes_to_already_complete(done: set[int]) -> None:
    engine = make_session(clock=FakeClock(), completion=FakeCompletion(done=done))

    assert engine.stage is SessionStage.ALREADY_COMPLETE
    engine.start()
    assert engine.phase_state is PhaseState.IDLE
    assert engine.live_stimulus is None
    assert engine.answer_options() == ()


def test_answer_options_follow_phase() -> None:
    clock = FakeClock()
    engine = make_session(clock=clock)

    assert engine.answer_options() == WORDS
    run_phase(engine, clock)
    assert engine.answer_options() == ("Red", "Blue", "Green", "Yellow")
    assert engine.phase is StroopPhase.COLOR


def test_missing_scoring_entry_counts_as_zero() -> None:
    clock = FakeClock()
    engine = make_session(clock=clock, scoring={"incorrect": -1})
    engine.start()
    answer_correctly(engine, clock, 2)

    assert engine.current_score == 0
    assert engine.missing_scoring_lookups == 2


def test_missing_phase_config_rejected() -> None:
    configs = make_configs()
    del configs[StroopPhase.COLOR]
    with pytest.raises(ConfigError):
        PhaseController(
            configs=configs,
            submitter=FakeSubmitter(),
            completion=FakeCompletion(),
            clock=FakeClock(),
            seed=1,
        )


def test_snapshot_reports_word_phase_score_before_color_phase() -> None:
    clock = FakeClock()
    engine = make_session(clock=clock)
    run_phase(engine, clock, correct=3)

    snap = engine.snapshot()

    assert snap.stage is SessionStage.COLOR_PHASE
    assert snap.phase_state is PhaseState.IDLE
    assert "Word Phase Complete! Your score: 3" in snap.prompt
    assert snap.options == ()
