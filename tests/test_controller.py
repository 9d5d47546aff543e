"""Tests for the session state controller."""

import asyncio
import contextlib
import socketserver
import threading

import pytest

from labsim.autosave import SaveCadence
from labsim.catalog import build_create_request
from labsim.controller import SessionController
from labsim.errors import InvalidTransitionError, TransientNetworkError, ValidationError
from labsim.http_service import HttpSimulationService
from labsim.schemas import SessionStatus, StepData
from labsim.service import InMemorySimulationService


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def make_controller(service=None, clock=None, **kwargs):
    service = service or InMemorySimulationService()
    request = build_create_request("student-1", "Titrate hydrochloric acid with sodium hydroxide")
    created = await service.create_simulation(request)
    simulation = await service.get_simulation(created.id)
    controller = SessionController(
        simulation,
        service,
        cadence=SaveCadence(interval=30, cooldown=10),
        clock=clock or FakeClock(),
        **kwargs,
    )
    return controller, service


def operations(service, simulation_id):
    return [op for op, sim_id in service.calls if sim_id == simulation_id]


class HangUpHandler(socketserver.BaseRequestHandler):
    """Reads the request and closes the connection without answering."""

    def handle(self):
        self.request.recv(65536)


@contextlib.contextmanager
def hangup_server():
    server = socketserver.ThreadingTCPServer(("127.0.0.1", 0), HangUpHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address
    try:
        yield f"http://{host}:{port}/api"
    finally:
        server.shutdown()
        server.server_close()


@pytest.mark.asyncio
async def test_full_lifecycle():
    controller, service = await make_controller()
    sim_id = controller.session.id

    assert await controller.start() is True
    assert controller.status is SessionStatus.IN_PROGRESS
    assert controller.session.started_at is not None

    assert await controller.pause() is True
    assert controller.status is SessionStatus.PAUSED

    assert await controller.resume() is True
    assert controller.status is SessionStatus.IN_PROGRESS

    assert await controller.complete(finalize=True) is True
    assert controller.status is SessionStatus.COMPLETED
    assert controller.session.progress == 100
    assert controller.session.completed_at is not None
    assert controller.error is None

    stored = (await service.get_simulation(sim_id)).state
    assert stored.status is SessionStatus.COMPLETED
    assert controller.session.version == stored.version


@pytest.mark.asyncio
@pytest.mark.parametrize("action", ["pause", "resume"])
async def test_invalid_transition_is_refused_before_network(action):
    controller, service = await make_controller()
    sim_id = controller.session.id
    calls_before = list(service.calls)

    assert await getattr(controller, action)() is False

    assert isinstance(controller.error, InvalidTransitionError)
    assert controller.status is SessionStatus.NOT_STARTED
    assert service.calls == calls_before
    assert action not in operations(service, sim_id)


@pytest.mark.asyncio
async def test_completed_session_rejects_everything():
    controller, service = await make_controller()
    await controller.start()
    await controller.complete(finalize=True)
    calls_before = list(service.calls)

    assert await controller.start() is False
    assert await controller.pause() is False
    assert await controller.resume() is False
    assert await controller.complete(finalize=True) is False
    assert await controller.record_step(0) is None

    assert controller.status is SessionStatus.COMPLETED
    assert service.calls == calls_before


@pytest.mark.asyncio
async def test_progress_is_monotonic_and_bounded():
    controller, _ = await make_controller()
    await controller.start()

    outcomes = [await controller.record_step(i) for i in (2, 0, 3, 1, 4, 4)]

    assert [o.progress for o in outcomes] == [60.0, 60.0, 80.0, 80.0, 100.0, 100.0]
    assert [o.current_step for o in outcomes] == [3, 3, 4, 4, 5, 5]
    assert all(0 <= o.progress <= 100 for o in outcomes)
    assert controller.session.current_step == 5


@pytest.mark.asyncio
async def test_step_index_beyond_procedure_is_capped():
    controller, _ = await make_controller()
    await controller.start()

    outcome = await controller.record_step(12)

    assert outcome.progress == 100.0
    assert outcome.completion_ready is True


@pytest.mark.asyncio
async def test_record_step_requires_in_progress():
    controller, _ = await make_controller()

    assert await controller.record_step(0) is None
    assert isinstance(controller.error, InvalidTransitionError)
    assert controller.session.progress == 0

    await controller.start()
    await controller.pause()
    assert await controller.record_step(0) is None
    assert controller.session.observations == []


@pytest.mark.asyncio
async def test_record_step_appends_observation_and_merges_inputs():
    controller, _ = await make_controller()
    await controller.start()

    await controller.record_step(0, StepData(observation="Burette filled to 0.0 mL", inputs={"start": 0.0}))
    await controller.record_step(1, {"inputs": {"end": 24.6}})

    observations = controller.session.observations
    assert [o.step for o in observations] == [1, 2]
    assert observations[0].text == "Burette filled to 0.0 mL"
    assert observations[1].text == "Completed step 2"
    assert controller.session.user_inputs == {"start": 0.0, "end": 24.6}


@pytest.mark.asyncio
async def test_record_step_forces_save_outside_cooldown():
    clock = FakeClock()
    controller, service = await make_controller(clock=clock)
    sim_id = controller.session.id
    await controller.start()

    await controller.record_step(0)
    assert "update_state" not in operations(service, sim_id)

    clock.advance(10)
    await controller.record_step(1)
    assert operations(service, sim_id).count("update_state") == 1
    assert (await service.get_simulation(sim_id)).state.progress == 40.0


@pytest.mark.asyncio
async def test_last_step_signals_completion_instead_of_saving():
    clock = FakeClock(100)
    seen = []
    controller, service = await make_controller(clock=clock, completion_listeners=[seen.append])
    sim_id = controller.session.id
    await controller.start()
    clock.advance(100)

    outcome = await controller.record_step(4)

    assert outcome.completion_ready is True
    assert seen == [outcome]
    assert controller.completion_ready is True
    assert "update_state" not in operations(service, sim_id)


@pytest.mark.asyncio
async def test_complete_requires_full_progress_or_finalize():
    controller, service = await make_controller()
    sim_id = controller.session.id
    await controller.start()
    await controller.record_step(1)

    assert await controller.complete() is False
    assert isinstance(controller.error, InvalidTransitionError)
    assert "complete" not in operations(service, sim_id)

    controller.dismiss_error()
    assert controller.error is None
    assert await controller.complete(finalize=True) is True


@pytest.mark.asyncio
async def test_complete_from_paused_sends_results_and_refreshes():
    refreshed = []

    async def on_refresh():
        refreshed.append(True)

    controller, service = await make_controller(refresh_listeners=[on_refresh])
    sim_id = controller.session.id
    await controller.start()
    for i in range(5):
        await controller.record_step(i, {"observation": f"step {i + 1} done"})
    await controller.pause()
    refreshed.clear()

    assert await controller.complete({"conclusion": "0.1 M"}) is True

    results = service.final_results[sim_id]
    assert results["conclusion"] == "0.1 M"
    assert [o["text"] for o in results["observations"]] == [f"step {i} done" for i in range(1, 6)]
    assert refreshed == [True]


@pytest.mark.asyncio
async def test_pause_saves_before_pausing():
    controller, service = await make_controller()
    sim_id = controller.session.id
    await controller.start()
    await controller.record_step(0)

    assert await controller.pause() is True

    ops = operations(service, sim_id)
    assert ops[-2:] == ["update_state", "pause"]
    stored = (await service.get_simulation(sim_id)).state
    assert stored.progress == 20.0
    assert stored.status is SessionStatus.PAUSED


@pytest.mark.asyncio
async def test_failed_pause_leaves_state_and_reuses_key():
    controller, service = await make_controller()
    sim_id = controller.session.id
    await controller.start()
    keys = []
    original = service.pause_simulation

    async def recording_pause(simulation_id, idempotency_key=None):
        keys.append(idempotency_key)
        return await original(simulation_id, idempotency_key)

    service.pause_simulation = recording_pause
    service.inject_failure("pause", TransientNetworkError(operation="pauseSimulation", reason="timeout"))

    assert await controller.pause() is False
    assert controller.status is SessionStatus.IN_PROGRESS
    assert isinstance(controller.error, TransientNetworkError)

    assert await controller.pause() is True
    assert controller.status is SessionStatus.PAUSED
    assert keys[0] == keys[1]

    await controller.resume()
    await controller.pause()
    assert keys[2] != keys[1]


@pytest.mark.asyncio
async def test_failed_complete_keeps_session_active():
    controller, service = await make_controller()
    await controller.start()
    service.inject_failure(
        "complete", TransientNetworkError(operation="completeSimulation", reason="HTTP 503")
    )

    assert await controller.complete(finalize=True) is False
    assert controller.status is SessionStatus.IN_PROGRESS
    assert controller.session.completed_at is None

    assert await controller.complete(finalize=True) is True
    assert controller.status is SessionStatus.COMPLETED


@pytest.mark.asyncio
async def test_duplicate_call_while_in_flight_is_ignored():
    controller, service = await make_controller()
    sim_id = controller.session.id
    await controller.start()
    gate = asyncio.Event()
    original = service.pause_simulation

    async def slow_pause(simulation_id, idempotency_key=None):
        await gate.wait()
        return await original(simulation_id, idempotency_key)

    service.pause_simulation = slow_pause

    first = asyncio.create_task(controller.pause())
    await asyncio.sleep(0)
    assert controller.loading is True
    assert await controller.pause() is False
    assert controller.error is None

    gate.set()
    assert await first is True
    assert operations(service, sim_id).count("pause") == 1


@pytest.mark.asyncio
async def test_mount_auto_starts_and_unmount_saves():
    controller, service = await make_controller()
    sim_id = controller.session.id

    await controller.mount()
    assert controller.status is SessionStatus.IN_PROGRESS
    assert controller.autosave.running

    controller.session.user_inputs["note"] = "left mid-way"
    await controller.unmount()

    assert not controller.autosave.running
    stored = (await service.get_simulation(sim_id)).state
    assert stored.user_inputs == {"note": "left mid-way"}


@pytest.mark.asyncio
async def test_mount_does_not_restart_paused_session():
    service = InMemorySimulationService()
    controller, _ = await make_controller(service)
    await controller.start()
    await controller.pause()

    reopened = SessionController(
        await service.get_simulation(controller.session.id),
        service,
        clock=FakeClock(),
    )
    async with reopened:
        assert reopened.status is SessionStatus.PAUSED
    assert operations(service, controller.session.id).count("start") == 1


@pytest.mark.asyncio
async def test_pause_waits_for_save_in_flight():
    clock = FakeClock()
    controller, service = await make_controller(clock=clock)
    sim_id = controller.session.id
    await controller.start()
    gate = asyncio.Event()
    original = service.update_simulation_state

    async def slow_update(simulation_id, patch):
        await gate.wait()
        return await original(simulation_id, patch)

    service.update_simulation_state = slow_update

    clock.advance(30)
    timer_save = asyncio.create_task(controller.autosave.tick())
    await asyncio.sleep(0)
    await controller.record_step(0)
    pausing = asyncio.create_task(controller.pause())
    await asyncio.sleep(0)
    assert not pausing.done()

    gate.set()
    assert await timer_save is True
    assert await pausing is True

    assert operations(service, sim_id)[-3:] == ["update_state", "update_state", "pause"]
    stored = (await service.get_simulation(sim_id)).state
    assert stored.progress == 20.0
    assert stored.status is SessionStatus.PAUSED
    assert controller.autosave.failures == 0


@pytest.mark.asyncio
async def test_add_observation_appends_and_saves():
    controller, service = await make_controller()
    sim_id = controller.session.id
    await controller.start()
    await controller.record_step(1)

    observation = await controller.add_observation("  Solution turned faint pink  ")

    assert observation.step == 2
    assert observation.text == "Solution turned faint pink"
    assert controller.session.observations[-1] is observation
    assert operations(service, sim_id)[-1] == "update_state"
    stored = (await service.get_simulation(sim_id)).state
    assert stored.observations[-1].text == "Solution turned faint pink"
    assert stored.observations[-1].step == 2


@pytest.mark.asyncio
async def test_add_observation_requires_in_progress_and_text():
    controller, service = await make_controller()
    sim_id = controller.session.id

    assert await controller.add_observation("Too early") is None
    assert isinstance(controller.error, InvalidTransitionError)

    await controller.start()
    controller.dismiss_error()
    assert await controller.add_observation("   ") is None
    assert isinstance(controller.error, ValidationError)
    assert controller.error.field == "observation"

    await controller.pause()
    assert await controller.add_observation("Noted while paused") is None
    assert isinstance(controller.error, InvalidTransitionError)
    assert controller.session.observations == []
    assert operations(service, sim_id)[-1] == "pause"


@pytest.mark.asyncio
async def test_dropped_connection_is_surfaced_not_raised():
    local = InMemorySimulationService()
    created = await local.create_simulation(
        build_create_request("student-1", "Titrate hydrochloric acid with sodium hydroxide")
    )
    simulation = await local.get_simulation(created.id)

    with hangup_server() as base_url:
        controller = SessionController(
            simulation,
            HttpSimulationService(base_url, timeout=5),
            cadence=SaveCadence(interval=30, cooldown=10),
            clock=FakeClock(),
        )

        await controller.mount()
        assert controller.status is SessionStatus.NOT_STARTED
        assert isinstance(controller.error, TransientNetworkError)

        assert await controller.autosave.flush() is False
        assert controller.autosave.failures == 1

        await controller.unmount()
        assert controller.autosave.failures == 2
