"""
SimulationService interface for the Remote Simulation Service.

This module provides the abstract SimulationService interface and an
in-memory implementation. The controller depends only on the interface, so
the REST client (``labsim.http_service.HttpSimulationService``) and the
in-memory reference server are interchangeable.

Key responsibilities:
- Create simulations from a validated student prompt
- Fetch one simulation or a page of a student's simulations
- Apply partial state patches guarded by a version token
- Apply lifecycle transitions (start/pause/resume/complete)
- Report children's progress to parents

Usage pattern:
    service = InMemorySimulationService()   # or HttpSimulationService()
    await service.initialize()
    simulation = await service.create_simulation(request)
    ack = await service.start_simulation(simulation.id)
    await service.close()
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from .config import Config
from .errors import (
    InvalidTransitionError,
    SimulationNotFoundError,
    StaleStateError,
    TransitionRejectedError,
)
from .lifecycle import LifecycleEvent, event_for_target, next_status
from .schemas import (
    CreateSimulationRequest,
    ServiceAck,
    SessionStatus,
    Simulation,
    SimulationPage,
    SimulationSession,
    StatePatch,
    VirtualLab,
    utcnow,
)


class SimulationService(ABC):
    """Abstract base class for the Remote Simulation Service.

    All methods are async: real implementations perform network I/O, and
    the controller must stay responsive to other user actions while a call
    is pending. Lifecycle calls accept an optional idempotency key so a
    retried operation is applied at most once.
    """

    async def initialize(self) -> None:
        """Open connections. Called once before use."""

    async def close(self) -> None:
        """Release connections. Called once after use."""

    @abstractmethod
    async def create_simulation(self, request: CreateSimulationRequest) -> Simulation:
        """
        Generate a new simulation for a student.

        Args:
            request: Validated creation request

        Returns:
            The created Simulation (with its immutable id)
        """

    @abstractmethod
    async def get_simulation(self, simulation_id: str) -> Simulation:
        """
        Fetch a simulation with its current state.

        Raises:
            SimulationNotFoundError: If the id is unknown
        """

    @abstractmethod
    async def list_student_simulations(
        self,
        student_id: str,
        *,
        page: int = 1,
        limit: int = 10,
        status: Optional[SessionStatus] = None,
        subject: Optional[str] = None,
    ) -> SimulationPage:
        """Return one page of a student's simulations, newest first."""

    @abstractmethod
    async def update_simulation_state(self, simulation_id: str, patch: StatePatch) -> ServiceAck:
        """
        Apply a partial state update. Unset fields are left untouched.

        Raises:
            StaleStateError: If ``patch.expected_version`` is outdated
            TransitionRejectedError: If ``patch.status`` is not a valid move
        """

    @abstractmethod
    async def start_simulation(
        self, simulation_id: str, idempotency_key: Optional[str] = None
    ) -> ServiceAck:
        """Move a simulation from not_started to in_progress."""

    @abstractmethod
    async def pause_simulation(
        self, simulation_id: str, idempotency_key: Optional[str] = None
    ) -> ServiceAck:
        """Move a simulation from in_progress to paused."""

    @abstractmethod
    async def resume_simulation(
        self, simulation_id: str, idempotency_key: Optional[str] = None
    ) -> ServiceAck:
        """Move a simulation from paused to in_progress."""

    @abstractmethod
    async def complete_simulation(
        self,
        simulation_id: str,
        final_results: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> ServiceAck:
        """Record final results and move the simulation to completed."""

    @abstractmethod
    async def delete_simulation(self, simulation_id: str) -> None:
        """Delete a simulation and its state."""

    @abstractmethod
    async def get_children_progress(self, parent_id: str) -> List[Dict[str, Any]]:
        """Summarize simulation progress for each child linked to a parent."""


def build_default_virtual_lab(request: CreateSimulationRequest) -> VirtualLab:
    """Generic procedure used when no lab generator is plugged in."""

    steps = [
        "Put on safety equipment and review the procedure",
        "Set up the apparatus",
        "Prepare the samples",
        "Carry out the measurements",
        "Record observations and draw conclusions",
    ]
    count = Config.DEFAULT_PROCEDURE_STEPS
    procedure = [steps[i] if i < len(steps) else f"Step {i + 1}" for i in range(count)]
    return VirtualLab(
        procedure=procedure,
        objectives=[f"Complete the experiment: {request.prompt[:60]}"],
    )


class InMemorySimulationService(SimulationService):
    """Dict-backed reference server (testing, offline demos).

    Behaves like a strict server: status changes follow the lifecycle table,
    a patch that repeats the current status is rejected, every accepted
    write bumps ``version``, and stale ``expected_version`` values are
    refused. Returned simulations are deep copies, so client-side mutations
    never leak into server state.

    ``calls`` records ``(operation, simulation_id)`` in arrival order.
    ``inject_failure`` makes the next call to an operation raise.
    """

    def __init__(self) -> None:
        self.simulations: Dict[str, Simulation] = {}
        self.final_results: Dict[str, Dict[str, Any]] = {}
        self.parents: Dict[str, List[str]] = {}
        self.calls: List[Tuple[str, str]] = []
        self._replayed: Dict[str, ServiceAck] = {}
        self._failures: Dict[str, List[Exception]] = {}

    # Test hooks -------------------------------------------------------------

    def inject_failure(self, operation: str, error: Exception) -> None:
        self._failures.setdefault(operation, []).append(error)

    def link_parent(self, parent_id: str, student_ids: List[str]) -> None:
        self.parents[parent_id] = list(student_ids)

    def _record(self, operation: str, simulation_id: str) -> None:
        self.calls.append((operation, simulation_id))
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def _stored(self, simulation_id: str) -> Simulation:
        try:
            return self.simulations[simulation_id]
        except KeyError:
            raise SimulationNotFoundError(simulation_id) from None

    # Interface ----------------------------------------------------------------

    async def create_simulation(self, request: CreateSimulationRequest) -> Simulation:
        simulation_id = uuid4().hex
        self._record("create", simulation_id)
        title = request.prompt[:60].rstrip()
        simulation = Simulation(
            id=simulation_id,
            student_id=request.student_id,
            title=title[:1].upper() + title[1:],
            description=request.prompt,
            subject=request.subject,
            level=request.level,
            prompt=request.prompt,
            preferred_duration=request.preferred_duration,
            virtual_lab=build_default_virtual_lab(request),
            state=SimulationSession(id=simulation_id),
        )
        self.simulations[simulation_id] = simulation
        return simulation.model_copy(deep=True)

    async def get_simulation(self, simulation_id: str) -> Simulation:
        self._record("get", simulation_id)
        return self._stored(simulation_id).model_copy(deep=True)

    async def list_student_simulations(
        self,
        student_id: str,
        *,
        page: int = 1,
        limit: int = 10,
        status: Optional[SessionStatus] = None,
        subject: Optional[str] = None,
    ) -> SimulationPage:
        self._record("list", student_id)
        matches = [
            sim
            for sim in self.simulations.values()
            if sim.student_id == student_id
            and (status is None or sim.state.status is SessionStatus(status))
            and (subject is None or sim.subject == subject)
        ]
        matches.reverse()
        start = max(page - 1, 0) * limit
        return SimulationPage(
            simulations=[sim.model_copy(deep=True) for sim in matches[start:start + limit]],
            total=len(matches),
            page=page,
            limit=limit,
        )

    async def update_simulation_state(self, simulation_id: str, patch: StatePatch) -> ServiceAck:
        self._record("update_state", simulation_id)
        state = self._stored(simulation_id).state

        if patch.expected_version is not None and patch.expected_version != state.version:
            raise StaleStateError(
                simulation_id=simulation_id,
                expected_version=patch.expected_version,
                current_version=state.version,
            )

        changes = patch.changed_fields()
        new_status = changes.get("status")
        if new_status is not None:
            if new_status is state.status:
                raise TransitionRejectedError(
                    simulation_id=simulation_id,
                    reason=f"invalid state transition: already {state.status.value}",
                )
            event = event_for_target(state.status, new_status)
            if event is None or event is LifecycleEvent.COMPLETE:
                raise TransitionRejectedError(
                    simulation_id=simulation_id,
                    reason=(
                        f"invalid state transition: {state.status.value} -> "
                        f"{SessionStatus(new_status).value}"
                    ),
                )

        for name, value in changes.items():
            if value is not None:
                setattr(state, name, copy.deepcopy(value))
        state.version += 1
        return ServiceAck(success=True, version=state.version)

    async def _transition(
        self,
        simulation_id: str,
        event: LifecycleEvent,
        idempotency_key: Optional[str],
    ) -> ServiceAck:
        self._record(event.value, simulation_id)
        if idempotency_key and idempotency_key in self._replayed:
            return self._replayed[idempotency_key]

        state = self._stored(simulation_id).state
        try:
            target = next_status(state.status, event)
        except InvalidTransitionError as exc:
            raise TransitionRejectedError(simulation_id=simulation_id, reason=str(exc)) from exc

        now = utcnow()
        if event is LifecycleEvent.START:
            state.started_at = now
        if event is LifecycleEvent.COMPLETE:
            state.progress = 100.0
            state.completed_at = now
        state.status = target
        state.last_active_at = now
        state.version += 1

        ack = ServiceAck(success=True, version=state.version, data={"status": target.value})
        if idempotency_key:
            self._replayed[idempotency_key] = ack
        return ack

    async def start_simulation(
        self, simulation_id: str, idempotency_key: Optional[str] = None
    ) -> ServiceAck:
        return await self._transition(simulation_id, LifecycleEvent.START, idempotency_key)

    async def pause_simulation(
        self, simulation_id: str, idempotency_key: Optional[str] = None
    ) -> ServiceAck:
        return await self._transition(simulation_id, LifecycleEvent.PAUSE, idempotency_key)

    async def resume_simulation(
        self, simulation_id: str, idempotency_key: Optional[str] = None
    ) -> ServiceAck:
        return await self._transition(simulation_id, LifecycleEvent.RESUME, idempotency_key)

    async def complete_simulation(
        self,
        simulation_id: str,
        final_results: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> ServiceAck:
        replay = idempotency_key is not None and idempotency_key in self._replayed
        ack = await self._transition(simulation_id, LifecycleEvent.COMPLETE, idempotency_key)
        if not replay:
            self.final_results[simulation_id] = dict(final_results or {})
        return ack

    async def delete_simulation(self, simulation_id: str) -> None:
        self._record("delete", simulation_id)
        self._stored(simulation_id)
        del self.simulations[simulation_id]
        self.final_results.pop(simulation_id, None)

    async def get_children_progress(self, parent_id: str) -> List[Dict[str, Any]]:
        self._record("children_progress", parent_id)
        summaries: List[Dict[str, Any]] = []
        for student_id in self.parents.get(parent_id, []):
            sims = [s for s in self.simulations.values() if s.student_id == student_id]
            completed = sum(1 for s in sims if s.state.status is SessionStatus.COMPLETED)
            active = sum(
                1
                for s in sims
                if s.state.status in (SessionStatus.IN_PROGRESS, SessionStatus.PAUSED)
            )
            average = sum(s.state.progress for s in sims) / len(sims) if sims else 0.0
            summaries.append(
                {
                    "studentId": student_id,
                    "total": len(sims),
                    "completed": completed,
                    "inProgress": active,
                    "averageProgress": round(average, 2),
                }
            )
        return summaries


__all__ = ["SimulationService", "InMemorySimulationService", "build_default_virtual_lab"]
