"""Tests for creating and listing simulations through the catalog."""

import pytest

from labsim.catalog import SimulationCatalog, build_create_request
from labsim.errors import ValidationError
from labsim.service import InMemorySimulationService


VALID_PROMPT = "Find the concentration of vinegar by titration"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "prompt, message",
    [
        ("", "Please describe what experiment you want to create"),
        ("    ", "Please describe what experiment you want to create"),
        ("salt", "at least 10 characters"),
        ("   short    ", "at least 10 characters"),
        ("x" * 501, "under 500 characters"),
    ],
)
async def test_invalid_prompt_never_reaches_service(prompt, message):
    service = InMemorySimulationService()
    catalog = SimulationCatalog(service)

    with pytest.raises(ValidationError, match=message) as excinfo:
        await catalog.create("student-1", prompt)

    assert excinfo.value.field == "prompt"
    assert service.calls == []
    assert service.simulations == {}


@pytest.mark.asyncio
async def test_invalid_level_never_reaches_service():
    service = InMemorySimulationService()
    catalog = SimulationCatalog(service)

    with pytest.raises(ValidationError) as excinfo:
        await catalog.create("student-1", VALID_PROMPT, level=9)

    assert excinfo.value.field == "level"
    assert service.calls == []


def test_prompt_bounds_are_inclusive():
    assert build_create_request("s", "x" * 10).prompt == "x" * 10
    assert build_create_request("s", "x" * 500).prompt == "x" * 500


@pytest.mark.asyncio
async def test_create_uses_defaults():
    service = InMemorySimulationService()
    catalog = SimulationCatalog(service)

    simulation = await catalog.create("student-1", VALID_PROMPT, subject="chemistry")

    assert service.calls == [("create", simulation.id)]
    assert simulation.level == 3
    assert simulation.preferred_duration == 30
    assert simulation.subject == "chemistry"
    assert simulation.state.status.value == "not_started"


@pytest.mark.asyncio
async def test_create_refreshes_listing_for_same_student():
    service = InMemorySimulationService()
    catalog = SimulationCatalog(service)

    first_page = await catalog.list("student-1")
    assert first_page.total == 0

    await catalog.create("student-1", VALID_PROMPT)

    assert catalog.current is not None
    assert catalog.current.total == 1
    assert [op for op, _ in service.calls] == ["list", "create", "list"]


@pytest.mark.asyncio
async def test_delete_refreshes_listing():
    service = InMemorySimulationService()
    catalog = SimulationCatalog(service)
    simulation = await catalog.create("student-1", VALID_PROMPT)
    await catalog.list("student-1")

    await catalog.delete(simulation.id)

    assert catalog.current.total == 0
    assert simulation.id not in service.simulations


@pytest.mark.asyncio
async def test_refresh_before_listing_is_noop():
    service = InMemorySimulationService()
    catalog = SimulationCatalog(service)

    assert await catalog.refresh() is None
    assert service.calls == []


@pytest.mark.asyncio
async def test_missing_ids_are_rejected_locally():
    service = InMemorySimulationService()
    catalog = SimulationCatalog(service)

    with pytest.raises(ValidationError):
        await catalog.list("")
    with pytest.raises(ValidationError):
        await catalog.get("")
    with pytest.raises(ValidationError):
        await catalog.children_progress("")
    assert service.calls == []
