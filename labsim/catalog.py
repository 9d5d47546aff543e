"""Student-facing simulation list: create, browse, refresh, delete."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import ValidationError as SchemaValidationError

from .errors import ValidationError
from .logging_utils import log_info, log_success
from .schemas import CreateSimulationRequest, SessionStatus, Simulation, SimulationPage
from .service import SimulationService


def build_create_request(
    student_id: str,
    prompt: str,
    level: int = 3,
    subject: Optional[str] = None,
    preferred_duration: int = 30,
) -> CreateSimulationRequest:
    """Validate creation input, converting schema errors into ``ValidationError``."""

    try:
        return CreateSimulationRequest(
            student_id=student_id,
            prompt=prompt,
            level=level,
            subject=subject,
            preferred_duration=preferred_duration,
        )
    except SchemaValidationError as exc:
        first = exc.errors(include_url=False)[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        message = str(first.get("msg", "invalid input")).removeprefix("Value error, ")
        raise ValidationError(message, field=field) from exc


class SimulationCatalog:
    """Keeps the latest page of a student's simulations in sync with the service.

    ``refresh`` is what a session controller calls after a save or a
    completion so the list view reflects the new state.
    """

    def __init__(self, service: SimulationService, *, page_size: int = 10) -> None:
        self.service = service
        self.page_size = page_size
        self.current: Optional[SimulationPage] = None
        self._last_query: Optional[Dict[str, Any]] = None

    async def create(
        self,
        student_id: str,
        prompt: str,
        *,
        level: int = 3,
        subject: Optional[str] = None,
        preferred_duration: int = 30,
    ) -> Simulation:
        """Create a simulation. Invalid input never reaches the service."""

        request = build_create_request(student_id, prompt, level, subject, preferred_duration)
        simulation = await self.service.create_simulation(request)
        log_success(f"Created simulation {simulation.id}: {simulation.title}")
        if self._last_query and self._last_query["student_id"] == student_id:
            await self.refresh()
        return simulation

    async def list(
        self,
        student_id: str,
        *,
        page: int = 1,
        status: Optional[SessionStatus] = None,
        subject: Optional[str] = None,
    ) -> SimulationPage:
        if not student_id:
            raise ValidationError("Student ID is required", field="student_id")
        self._last_query = {
            "student_id": student_id,
            "page": page,
            "status": status,
            "subject": subject,
        }
        self.current = await self.service.list_student_simulations(
            student_id, page=page, limit=self.page_size, status=status, subject=subject
        )
        log_info(
            f"Loaded {len(self.current.simulations)} of {self.current.total} simulations "
            f"for student {student_id}"
        )
        return self.current

    async def refresh(self) -> Optional[SimulationPage]:
        """Re-run the last ``list`` query. No-op before the first listing."""

        if self._last_query is None:
            return None
        query = dict(self._last_query)
        return await self.list(query.pop("student_id"), **query)

    async def get(self, simulation_id: str) -> Simulation:
        if not simulation_id:
            raise ValidationError("Simulation ID is required", field="simulation_id")
        return await self.service.get_simulation(simulation_id)

    async def delete(self, simulation_id: str) -> None:
        if not simulation_id:
            raise ValidationError("Simulation ID is required", field="simulation_id")
        await self.service.delete_simulation(simulation_id)
        await self.refresh()

    async def children_progress(self, parent_id: str) -> List[Dict[str, Any]]:
        if not parent_id:
            raise ValidationError("Parent ID is required", field="parent_id")
        return await self.service.get_children_progress(parent_id)


__all__ = ["SimulationCatalog", "build_create_request"]
