"""Tests for the in-memory Remote Simulation Service."""

import pytest

from labsim.catalog import build_create_request
from labsim.errors import SimulationNotFoundError, StaleStateError, TransitionRejectedError
from labsim.schemas import Observation, SessionStatus, StatePatch
from labsim.service import InMemorySimulationService


async def make_simulation(service, student_id="student-1", subject=None):
    request = build_create_request(student_id, "Measure the boiling point of salt water", subject=subject)
    return await service.create_simulation(request)


@pytest.mark.asyncio
async def test_partial_update_leaves_unset_fields():
    service = InMemorySimulationService()
    simulation = await make_simulation(service)
    await service.start_simulation(simulation.id)

    ack = await service.update_simulation_state(
        simulation.id, StatePatch(progress=40.0, user_inputs={"temp": 101})
    )
    await service.update_simulation_state(simulation.id, StatePatch(current_step=2))

    stored = (await service.get_simulation(simulation.id)).state
    assert ack.success is True
    assert stored.progress == 40.0
    assert stored.user_inputs == {"temp": 101}
    assert stored.current_step == 2
    assert stored.status is SessionStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_every_write_bumps_version():
    service = InMemorySimulationService()
    simulation = await make_simulation(service)

    start_ack = await service.start_simulation(simulation.id)
    save_ack = await service.update_simulation_state(
        simulation.id, StatePatch(progress=20.0, expected_version=start_ack.version)
    )

    assert start_ack.version == 1
    assert save_ack.version == 2


@pytest.mark.asyncio
async def test_stale_version_is_refused():
    service = InMemorySimulationService()
    simulation = await make_simulation(service)
    await service.start_simulation(simulation.id)

    with pytest.raises(StaleStateError) as excinfo:
        await service.update_simulation_state(simulation.id, StatePatch(progress=20.0, expected_version=0))

    assert excinfo.value.expected_version == 0
    assert excinfo.value.current_version == 1
    assert (await service.get_simulation(simulation.id)).state.progress == 0


@pytest.mark.asyncio
async def test_patch_repeating_current_status_is_rejected():
    service = InMemorySimulationService()
    simulation = await make_simulation(service)
    await service.start_simulation(simulation.id)

    with pytest.raises(TransitionRejectedError, match="already in_progress"):
        await service.update_simulation_state(
            simulation.id, StatePatch(status=SessionStatus.IN_PROGRESS)
        )


@pytest.mark.asyncio
async def test_patch_cannot_complete_a_simulation():
    service = InMemorySimulationService()
    simulation = await make_simulation(service)
    await service.start_simulation(simulation.id)

    with pytest.raises(TransitionRejectedError):
        await service.update_simulation_state(
            simulation.id, StatePatch(status=SessionStatus.COMPLETED)
        )


@pytest.mark.asyncio
async def test_lifecycle_calls_follow_table():
    service = InMemorySimulationService()
    simulation = await make_simulation(service)

    with pytest.raises(TransitionRejectedError):
        await service.pause_simulation(simulation.id)

    await service.start_simulation(simulation.id)
    await service.pause_simulation(simulation.id)
    await service.resume_simulation(simulation.id)
    await service.complete_simulation(simulation.id, {"summary": "done"})

    state = (await service.get_simulation(simulation.id)).state
    assert state.status is SessionStatus.COMPLETED
    assert state.progress == 100
    assert state.completed_at is not None
    assert service.final_results[simulation.id] == {"summary": "done"}


@pytest.mark.asyncio
async def test_idempotency_key_replays_without_reapplying():
    service = InMemorySimulationService()
    simulation = await make_simulation(service)
    await service.start_simulation(simulation.id)

    first = await service.complete_simulation(simulation.id, {"attempt": 1}, idempotency_key="key-1")
    second = await service.complete_simulation(simulation.id, {"attempt": 2}, idempotency_key="key-1")

    assert first == second
    assert service.final_results[simulation.id] == {"attempt": 1}

    with pytest.raises(TransitionRejectedError):
        await service.complete_simulation(simulation.id, {"attempt": 3}, idempotency_key="key-2")


@pytest.mark.asyncio
async def test_returned_copies_are_isolated():
    service = InMemorySimulationService()
    simulation = await make_simulation(service)
    await service.start_simulation(simulation.id)

    observation = Observation(step=1, text="Water boiled at 102C")
    await service.update_simulation_state(simulation.id, StatePatch(observations=[observation]))
    observation.text = "edited locally"

    copy = await service.get_simulation(simulation.id)
    copy.state.progress = 99

    stored = (await service.get_simulation(simulation.id)).state
    assert stored.progress == 0
    assert stored.observations[0].text == "Water boiled at 102C"


@pytest.mark.asyncio
async def test_unknown_simulation_raises_not_found():
    service = InMemorySimulationService()

    with pytest.raises(SimulationNotFoundError):
        await service.get_simulation("missing")
    with pytest.raises(SimulationNotFoundError):
        await service.delete_simulation("missing")


@pytest.mark.asyncio
async def test_listing_filters_and_paginates():
    service = InMemorySimulationService()
    ids = [(await make_simulation(service, subject="chemistry")).id for _ in range(3)]
    await make_simulation(service, subject="physics")
    await make_simulation(service, student_id="student-2")
    await service.start_simulation(ids[0])

    page = await service.list_student_simulations("student-1", page=1, limit=2)
    assert page.total == 4
    assert len(page.simulations) == 2

    chemistry = await service.list_student_simulations("student-1", subject="chemistry")
    assert chemistry.total == 3

    active = await service.list_student_simulations("student-1", status=SessionStatus.IN_PROGRESS)
    assert [sim.id for sim in active.simulations] == [ids[0]]


@pytest.mark.asyncio
async def test_children_progress_summary():
    service = InMemorySimulationService()
    service.link_parent("parent-1", ["student-1", "student-2"])
    simulation = await make_simulation(service)
    await make_simulation(service)
    await service.start_simulation(simulation.id)
    await service.complete_simulation(simulation.id)

    summaries = await service.get_children_progress("parent-1")

    assert summaries[0] == {
        "studentId": "student-1",
        "total": 2,
        "completed": 1,
        "inProgress": 0,
        "averageProgress": 50.0,
    }
    assert summaries[1]["total"] == 0


@pytest.mark.asyncio
async def test_injected_failure_is_raised_once():
    service = InMemorySimulationService()
    simulation = await make_simulation(service)
    service.inject_failure("start", RuntimeError("boom"))

    with pytest.raises(RuntimeError):
        await service.start_simulation(simulation.id)
    ack = await service.start_simulation(simulation.id)

    assert ack.success is True
    assert service.calls[-2:] == [("start", simulation.id), ("start", simulation.id)]
