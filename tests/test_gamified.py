"""Tests for the gamified session controller."""

import pytest

from labsim.autosave import SaveCadence
from labsim.catalog import build_create_request
from labsim.config import Config
from labsim.content import ContentService
from labsim.errors import InvalidTransitionError, ValidationError
from labsim.gamified import GamifiedSessionController, game_progress
from labsim.sandbox import GameHarness, GameHost
from labsim.schemas import GameCompleted, Observation, ScoreUpdate, SessionStatus, StatePatch
from labsim.service import InMemorySimulationService


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture(autouse=True)
def offline_content(monkeypatch):
    async def must_not_call(**_kwargs):
        raise AssertionError("LLM should not be called")

    monkeypatch.setattr(Config, "GOOGLE_API_KEY", None)
    monkeypatch.setattr(Config, "GAME_TOTAL_ACTIONS", 10)
    monkeypatch.setattr("labsim.content.call_llm_with_retries", must_not_call)


async def create_game(service):
    request = build_create_request(
        "student-1", "Titrate hydrochloric acid with sodium hydroxide", subject="chemistry"
    )
    created = await service.create_simulation(request)
    return await service.get_simulation(created.id)


def make_controller(simulation, service, **kwargs):
    return GamifiedSessionController(
        simulation,
        service,
        content=ContentService(provider="google", model="gemini-2.5-flash"),
        cadence=SaveCadence(interval=30, cooldown=10),
        clock=FakeClock(),
        **kwargs,
    )


async def started_game(**kwargs):
    service = InMemorySimulationService()
    controller = make_controller(await create_game(service), service, **kwargs)
    await controller.start()
    return controller, service


@pytest.mark.parametrize(
    "actions, expected",
    [(0, 0.0), (1, 10.0), (3, 30.0), (10, 100.0), (14, 100.0)],
)
def test_game_progress(actions, expected):
    assert game_progress(actions) == expected


def test_game_progress_rounds_to_two_places():
    assert game_progress(1, 3) == 33.33


@pytest.mark.asyncio
async def test_mount_starts_game_with_fallback_kit():
    service = InMemorySimulationService()
    controller = make_controller(await create_game(service), service)

    await controller.mount()
    try:
        assert controller.status is SessionStatus.IN_PROGRESS
        assert "Titrate hydrochloric acid" in controller.instructions
        equipment_ids = {item.id for item in controller.game.available_equipment}
        assert {"burette", "conical_flask", "beaker_100ml"} <= equipment_ids
        assert controller.session.game_state["availableEquipment"]
        assert controller.session.score == 0
    finally:
        await controller.unmount()


@pytest.mark.asyncio
async def test_use_equipment_scores_and_records():
    controller, _ = await started_game()

    result = await controller.use_equipment("burette", "measuring")

    assert result.score_gain == 10
    assert controller.session.score == 10
    assert controller.session.progress == 10.0
    assert controller.session.current_step == 0
    observation = controller.session.observations[-1]
    assert observation.action == "Used Burette on measuring"
    assert observation.text == "The burette is set up for precise volume measurements"
    game_state = controller.session.game_state
    assert game_state["selectedEquipment"][0]["id"] == "burette"
    assert game_state["workspaceContents"]["measuring"] == ["Burette"]


@pytest.mark.asyncio
async def test_ten_actions_finish_the_game():
    ready = []
    controller, service = await started_game(completion_listeners=[ready.append])

    for _ in range(5):
        await controller.use_equipment("beaker_250ml", "beaker")
        await controller.mix_chemicals("hcl_solution", "naoh_solution")

    assert controller.session.progress == 100.0
    assert controller.session.current_step == 5
    assert controller.completion_ready is True
    assert len(ready) == 1
    assert controller.session.score == 5 * 10 + 5 * 15
    assert len(controller.game.mixed_solutions) == 5

    await controller.request_hint()
    assert await controller.complete() is True

    results = service.final_results[controller.session.id]
    assert results["gameResults"] == {
        "finalScore": 125,
        "actionsCompleted": 10,
        "observationsMade": 10,
        "hintsUsed": 1,
    }
    assert len(results["observations"]) == 10


@pytest.mark.asyncio
async def test_progress_counts_steps_of_twenty_percent():
    controller, _ = await started_game()

    steps = []
    for _ in range(4):
        await controller.use_equipment("pipette", "measuring")
        steps.append(controller.session.current_step)

    assert steps == [0, 1, 1, 2]


@pytest.mark.asyncio
async def test_game_completed_message_allows_early_completion():
    controller, service = await started_game()
    await controller.use_equipment("burette", "measuring")

    await controller.apply_game_message(GameCompleted(score=80))

    assert controller.completion_ready is True
    assert controller.session.score == 80
    assert await controller.complete() is True
    assert controller.status is SessionStatus.COMPLETED
    assert service.final_results[controller.session.id]["gameResults"]["finalScore"] == 80


@pytest.mark.asyncio
async def test_sandbox_messages_reach_controller():
    controller, _ = await started_game()
    host = GameHost([controller.apply_game_message])
    harness = GameHarness()

    harness.report_score(40)
    harness.report_completion(60)
    await host.drain(harness)

    assert controller.session.score == 60
    assert controller.completion_ready is True


@pytest.mark.asyncio
async def test_messages_after_completion_do_not_change_score():
    controller, _ = await started_game()
    await controller.complete(finalize=True)

    await controller.apply_game_message(GameCompleted(score=999))

    assert controller.session.score == 0


@pytest.mark.asyncio
async def test_paused_game_rejects_actions():
    controller, _ = await started_game()
    await controller.pause()

    assert await controller.use_equipment("burette", "measuring") is None
    assert await controller.mix_chemicals("water", "indicator") is None

    assert isinstance(controller.error, InvalidTransitionError)
    assert controller.session.score == 0
    assert controller.game.actions_completed == 0


@pytest.mark.asyncio
async def test_unknown_equipment_is_reported():
    controller, _ = await started_game()

    assert await controller.use_equipment("bunsen_burner", "beaker") is None

    assert isinstance(controller.error, ValidationError)
    assert controller.error.field == "equipment"
    assert controller.session.progress == 0


@pytest.mark.asyncio
async def test_hints_follow_progress():
    controller, _ = await started_game()

    first = await controller.request_hint()
    await controller.use_equipment("thermometer", "observation")
    await controller.use_equipment("stirrer", "beaker")
    second = await controller.request_hint()

    assert first.type == "tip"
    assert second.type == "encouragement"
    assert len(controller.session.game_state["hints"]) == 2


@pytest.mark.asyncio
async def test_resumed_game_without_kit_keeps_score():
    service = InMemorySimulationService()
    simulation = await create_game(service)
    ack = await service.start_simulation(simulation.id)
    await service.update_simulation_state(
        simulation.id,
        StatePatch(
            score=30,
            progress=30.0,
            current_step=1,
            observations=[Observation(step=1, text="Burette filled", action="Used Burette on measuring")],
            expected_version=ack.version,
        ),
    )

    controller = make_controller(await service.get_simulation(simulation.id), service)
    await controller.mount()
    try:
        assert controller.status is SessionStatus.IN_PROGRESS
        assert controller.game.available_equipment
        assert controller.session.score == 30
        assert len(controller.session.observations) == 1
    finally:
        await controller.unmount()

    assert [op for op, _ in service.calls].count("start") == 1


@pytest.mark.asyncio
async def test_score_update_is_saved():
    controller, service = await started_game()
    controller.autosave.clock.now = 60

    await controller.apply_game_message(ScoreUpdate(score=40))

    stored = (await service.get_simulation(controller.session.id)).state
    assert stored.score == 40
    assert controller.completion_ready is False


@pytest.mark.asyncio
async def test_paused_game_ignores_sandbox_messages():
    controller, service = await started_game()
    await controller.pause()
    calls_before = len(service.calls)

    await controller.apply_game_message(ScoreUpdate(score=70))
    await controller.apply_game_message(GameCompleted(score=90))

    assert controller.session.score == 0
    assert controller.completion_ready is False
    assert len(service.calls) == calls_before
