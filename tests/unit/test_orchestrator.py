import pytest

from conftest import CancellingSleeper, FakeObserver, RecordingActuator, ScriptedLLM, send_button_screen
from otto.agent.boundaries import LLMCallType
from otto.agent.concurrency import CancellationToken
from otto.agent.events import (
    ACTION_COMPLETED,
    ERROR,
    GOALS_READY,
    SESSION_COMPLETE,
    SESSION_UPDATED,
    VERIFICATION,
    EventBus,
)
from otto.agent.orchestrator import GoalOrchestrator
from otto.agent.settings import AgentSettings
from otto.agent.state import AgentState
from otto.agent.views import GoalStatus
from otto.exceptions import AgentCancelled, BudgetExhausted, CaptureError, DecompositionError, GoalFailed

DECIDE = LLMCallType.ACTION_DECISION
VERIFY = LLMCallType.VERIFICATION


def make(command, llm, observer=None, actuator=None, sleeper=None, **settings):
    events = EventBus()
    seen = []
    events.subscribe(seen.append)
    orchestrator = GoalOrchestrator(
        command,
        llm,
        observer or FakeObserver(),
        actuator or RecordingActuator(),
        settings=AgentSettings(**settings),
        events=events,
        sleep=sleeper,
    )
    return orchestrator, seen


@pytest.mark.asyncio
async def test_open_app_completes_without_verification(sleeper):
    llm = ScriptedLLM({DECIDE: ["open Safari"]})
    actuator = RecordingActuator()
    orchestrator, seen = make("open safari", llm, actuator=actuator, sleeper=sleeper)

    session = await orchestrator.run()

    assert session.state == AgentState.COMPLETE
    assert session.total_actions == 1
    assert session.goals[0].status == GoalStatus.COMPLETED
    assert session.goals[0].attempts == 0
    assert actuator.calls == [("open_app", ("Safari",))]
    assert llm.call_types() == [DECIDE]
    assert orchestrator.decomposition.method == "pattern"
    assert SESSION_COMPLETE in [e.kind for e in seen]


@pytest.mark.asyncio
async def test_click_is_verified(sleeper):
    llm = ScriptedLLM({
        DECIDE: ["click 450 320"],
        VERIFY: ["ACHIEVED\nPROGRESS\nObservation: message sent"],
    })
    actuator = RecordingActuator()
    observer = FakeObserver([send_button_screen()])
    orchestrator, seen = make("click on the send button", llm, observer, actuator, sleeper)

    session = await orchestrator.run()

    assert session.state == AgentState.COMPLETE
    assert actuator.calls == [("mouse_click", (450, 320, "left"))]
    assert llm.call_types() == [DECIDE, VERIFY]
    assert 0.3 in sleeper.delays
    verification = [e.payload for e in seen if e.kind == VERIFICATION][0]
    assert verification.goal_achieved
    assert verification.observation == "message sent"


@pytest.mark.asyncio
async def test_find_and_click_is_resolved_against_the_screen(sleeper):
    llm = ScriptedLLM({
        DECIDE: ["click send button", "click 450 320"],
        VERIFY: ["ACHIEVED"],
    })
    actuator = RecordingActuator()
    orchestrator, _ = make("click on the send button", llm, FakeObserver([send_button_screen()]), actuator, sleeper)

    await orchestrator.run()

    assert actuator.calls == [("mouse_click", (450, 320, "left"))]
    second_pass_prompt = llm.calls[1][0]
    assert 'I need to click: "send button"' in second_pass_prompt
    assert "center=(450, 320)" in second_pass_prompt


@pytest.mark.asyncio
async def test_unresolved_find_and_click_costs_an_attempt(sleeper):
    llm = ScriptedLLM({
        DECIDE: ["click send button", "not_found", "click 450 320"],
        VERIFY: ["ACHIEVED"],
    })
    actuator = RecordingActuator()
    orchestrator, _ = make("click on the send button", llm, FakeObserver([send_button_screen()]), actuator, sleeper)

    session = await orchestrator.run()

    assert session.goals[0].attempts == 1
    assert session.total_actions == 1


@pytest.mark.asyncio
async def test_parse_failure_is_retried_with_a_fresh_decision(sleeper):
    llm = ScriptedLLM({DECIDE: ["hmm, let me think", 'type "hello"']})
    actuator = RecordingActuator()
    orchestrator, _ = make("type hello", llm, actuator=actuator, sleeper=sleeper)

    session = await orchestrator.run()

    goal = session.goals[0]
    assert goal.status == GoalStatus.COMPLETED
    assert goal.attempts == 1
    assert session.total_actions == 1
    assert actuator.calls == [("type_text", ("hello",))]
    assert 0.1 in sleeper.delays


@pytest.mark.asyncio
async def test_goal_fails_after_max_attempts(sleeper):
    llm = ScriptedLLM({
        DECIDE: ["click 10 20", "click 10 20"],
        VERIFY: ["NOT_ACHIEVED\nNO_PROGRESS\nnothing changed"] * 2,
    })
    orchestrator, seen = make("click on the logo", llm, sleeper=sleeper, max_attempts_per_goal=2)

    with pytest.raises(GoalFailed, match="Goal failed after 2 attempts: Click on logo"):
        await orchestrator.run()

    session = orchestrator.session
    assert session.state == AgentState.ERROR
    assert session.error == "Goal failed after 2 attempts: Click on logo"
    assert session.goals[0].attempts == 2
    assert session.goals[0].status == GoalStatus.FAILED
    assert session.total_actions == 2
    assert [e.payload for e in seen if e.kind == ERROR] == [session.error]


@pytest.mark.asyncio
async def test_each_retry_builds_a_new_action(sleeper):
    llm = ScriptedLLM({
        DECIDE: ["click 10 20", "click 10 20"],
        VERIFY: ["NOT_ACHIEVED", "ACHIEVED"],
    })
    orchestrator, _ = make("click on the logo", llm, sleeper=sleeper)

    session = await orchestrator.run()

    ids = [r.action_id for r in session.action_history]
    assert len(ids) == 2 and ids[0] != ids[1]


@pytest.mark.asyncio
async def test_action_budget_is_checked_before_work(sleeper):
    llm = ScriptedLLM({DECIDE: ["open chrome", "key cmd+l"]})
    actuator = RecordingActuator()
    orchestrator, _ = make("open chrome and search for rust", llm, actuator=actuator, sleeper=sleeper, max_total_actions=1)

    with pytest.raises(BudgetExhausted, match="Maximum actions exceeded"):
        await orchestrator.run()

    assert orchestrator.session.total_actions == 1
    assert orchestrator.session.state == AgentState.ERROR
    assert actuator.calls == [("open_app", ("Google Chrome",))]
    assert llm.call_types() == [DECIDE]


@pytest.mark.asyncio
async def test_cancellation_stops_before_the_next_boundary_call(sleeper):
    token = CancellationToken()
    llm = ScriptedLLM({DECIDE: ["open Safari"]}, on_call=lambda prompt, call_type: token.cancel())
    actuator = RecordingActuator()
    observer = FakeObserver()
    orchestrator = GoalOrchestrator("open safari", llm, observer, actuator, cancel_token=token, sleep=sleeper)

    with pytest.raises(AgentCancelled):
        await orchestrator.run()

    assert orchestrator.session.state == AgentState.ERROR
    assert "cancel" in orchestrator.session.error.lower()
    assert actuator.calls == []
    assert len(llm.calls) == 1
    assert len(observer.contexts) == 1


@pytest.mark.asyncio
async def test_run_resets_a_stale_token(sleeper):
    token = CancellationToken()
    token.cancel()
    llm = ScriptedLLM({DECIDE: ["open Safari"]})
    orchestrator = GoalOrchestrator("open safari", llm, FakeObserver(), RecordingActuator(), cancel_token=token, sleep=sleeper)

    session = await orchestrator.run()

    assert session.state == AgentState.COMPLETE


@pytest.mark.asyncio
async def test_capture_failure_costs_an_attempt_but_no_action(sleeper):
    llm = ScriptedLLM({DECIDE: ["open Safari"]})
    orchestrator, _ = make("open safari", llm, FakeObserver(failures=1), sleeper=sleeper)

    session = await orchestrator.run()

    assert session.goals[0].attempts == 1
    assert session.total_actions == 1


@pytest.mark.asyncio
async def test_actuation_failure_is_recorded_and_retried(sleeper):
    llm = ScriptedLLM({DECIDE: ["open Safari", "open Safari"]})
    actuator = RecordingActuator(fail=["open_app"])
    orchestrator, seen = make("open safari", llm, actuator=actuator, sleeper=sleeper)

    session = await orchestrator.run()

    assert session.total_actions == 2
    assert [r.success for r in session.action_history] == [False, True]
    assert session.action_history[0].error_message == "open_app failed"
    assert session.goals[0].attempts == 1
    assert VERIFY not in llm.call_types()
    assert len([e for e in seen if e.kind == ACTION_COMPLETED]) == 2


class FailingAfterCaptureObserver(FakeObserver):
    """Fails only the first "after" capture taken by the Verifier."""

    async def observe(self, goal_context):
        screen = await super().observe(goal_context)
        if len(self.contexts) == 2:
            raise CaptureError("after capture failed")
        return screen


@pytest.mark.asyncio
async def test_verifier_failure_is_not_fatal(sleeper):
    llm = ScriptedLLM({DECIDE: ["click 1 2", "click 1 2"], VERIFY: ["ACHIEVED"]})
    orchestrator, _ = make("click on the logo", llm, FailingAfterCaptureObserver(), sleeper=sleeper)

    session = await orchestrator.run()

    assert session.state == AgentState.COMPLETE
    assert session.goals[0].attempts == 1
    assert session.total_actions == 2
    assert llm.call_types() == [DECIDE, DECIDE, VERIFY]


@pytest.mark.asyncio
async def test_decomposition_failure_is_terminal(sleeper):
    llm = ScriptedLLM({LLMCallType.DECOMPOSITION: ["no idea"]})
    orchestrator, seen = make("rearrange my desktop icons", llm, sleeper=sleeper)

    with pytest.raises(DecompositionError):
        await orchestrator.run()

    assert orchestrator.session.state == AgentState.ERROR
    assert orchestrator.session.goals == []
    assert ERROR in [e.kind for e in seen]


@pytest.mark.asyncio
async def test_listeners_only_see_snapshots(sleeper):
    llm = ScriptedLLM({DECIDE: ["open Safari"]})
    orchestrator, seen = make("open safari", llm, sleeper=sleeper)

    session = await orchestrator.run()

    snapshots = [e.payload for e in seen if e.kind == SESSION_UPDATED]
    assert all(s is not session for s in snapshots)
    states = [s.state for s in snapshots]
    for expected in (AgentState.DECOMPOSING, AgentState.OBSERVING, AgentState.THINKING, AgentState.ACTING, AgentState.COMPLETE):
        assert expected in states

    goals_ready = [e.payload for e in seen if e.kind == GOALS_READY][0]
    session.goals[0].record_attempt()
    assert goals_ready[0].attempts == 0


def assert_cancelled(orchestrator):
    assert orchestrator.session.state == AgentState.ERROR
    assert "cancel" in orchestrator.session.error.lower()


@pytest.mark.asyncio
async def test_cancel_during_verify_settle_skips_after_capture():
    token = CancellationToken()
    llm = ScriptedLLM({DECIDE: ["click 10 20"], VERIFY: ["ACHIEVED"]})
    observer = FakeObserver()
    actuator = RecordingActuator()
    orchestrator = GoalOrchestrator(
        "click on the logo", llm, observer, actuator,
        cancel_token=token, sleep=CancellingSleeper(token, 0.3),
    )

    with pytest.raises(AgentCancelled):
        await orchestrator.run()

    assert_cancelled(orchestrator)
    assert len(observer.contexts) == 1
    assert llm.call_types() == [DECIDE]
    assert actuator.calls == [("mouse_click", (10, 20, "left"))]


class CancelOnAfterCaptureObserver(FakeObserver):
    def __init__(self, token):
        super().__init__()
        self.token = token

    async def observe(self, goal_context):
        screen = await super().observe(goal_context)
        if len(self.contexts) == 2:
            self.token.cancel()
        return screen


@pytest.mark.asyncio
async def test_cancel_during_after_capture_skips_verification_call(sleeper):
    token = CancellationToken()
    llm = ScriptedLLM({DECIDE: ["click 10 20"], VERIFY: ["ACHIEVED"]})
    observer = CancelOnAfterCaptureObserver(token)
    orchestrator = GoalOrchestrator("click on the logo", llm, observer, RecordingActuator(), cancel_token=token, sleep=sleeper)

    with pytest.raises(AgentCancelled):
        await orchestrator.run()

    assert_cancelled(orchestrator)
    assert len(observer.contexts) == 2
    assert llm.call_types() == [DECIDE]


@pytest.mark.asyncio
async def test_cancel_during_first_pass_skips_element_lookup(sleeper):
    token = CancellationToken()
    llm = ScriptedLLM(
        {DECIDE: ["click send button", "click 450 320"]},
        on_call=lambda prompt, call_type: token.cancel(),
    )
    observer = FakeObserver([send_button_screen()])
    actuator = RecordingActuator()
    orchestrator = GoalOrchestrator("click on the send button", llm, observer, actuator, cancel_token=token, sleep=sleeper)

    with pytest.raises(AgentCancelled):
        await orchestrator.run()

    assert_cancelled(orchestrator)
    assert len(llm.calls) == 1
    assert actuator.calls == []
    assert len(observer.contexts) == 1


@pytest.mark.asyncio
async def test_cancel_during_retry_settle_stops_before_next_attempt():
    token = CancellationToken()
    llm = ScriptedLLM({DECIDE: ["click 10 20", "click 10 20"], VERIFY: ["NOT_ACHIEVED", "ACHIEVED"]})
    observer = FakeObserver()
    actuator = RecordingActuator()
    orchestrator = GoalOrchestrator(
        "click on the logo", llm, observer, actuator,
        cancel_token=token, sleep=CancellingSleeper(token, 0.1),
    )

    with pytest.raises(AgentCancelled):
        await orchestrator.run()

    assert_cancelled(orchestrator)
    assert orchestrator.session.goals[0].attempts == 1
    assert llm.call_types() == [DECIDE, VERIFY]
    assert len(observer.contexts) == 2
    assert len(actuator.calls) == 1
