"""
Session State Controller.

Holds the single in-memory copy of a simulation attempt and exposes the
user-driven lifecycle operations. All dependencies are injected.

Flow of one viewing:
1. ``mount()`` starts auto-save and auto-starts a not_started session
2. User actions call start/pause/resume/record_step/complete
3. Each transition is checked against the lifecycle table, sent to the
   Remote Simulation Service, and applied locally only once confirmed
4. ``unmount()`` stops the timer and attempts a final save

User actions never raise on service failures. They return ``False`` (or
``None``) and leave the error on ``controller.error`` for the view to show
until ``dismiss_error()``; local state is left untouched.
"""

from __future__ import annotations

import inspect
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union
from uuid import uuid4

from .autosave import AutoSaveScheduler, SaveCadence
from .errors import InvalidTransitionError, LabSimError, TransitionRejectedError, ValidationError
from .lifecycle import ACTIVE_STATUSES, LifecycleEvent, next_status
from .logging_utils import log_error, log_info, log_success
from .schemas import (
    Observation,
    ServiceAck,
    SessionStatus,
    Simulation,
    StepData,
    StepOutcome,
    utcnow,
)
from .service import SimulationService


RefreshListener = Callable[[], Union[None, Awaitable[None]]]
CompletionListener = Callable[[StepOutcome], Union[None, Awaitable[None]]]


async def _call_listener(listener: Callable[..., Any], *args: Any) -> None:
    result = listener(*args)
    if inspect.isawaitable(result):
        await result


class SessionController:
    """Lifecycle controller for one classic simulation attempt.

    Args:
        simulation: Simulation record as fetched from the service; its
            ``state`` is the session this controller owns while mounted
        service: Remote Simulation Service implementation
        cadence: Optional auto-save cadence (defaults from Config)
        clock: Monotonic clock used by auto-save (injectable for tests)
        refresh_listeners: Called after saves and after completion so the
            parent list view can refresh
        completion_listeners: Called with the StepOutcome when the last
            procedure step is recorded (open the completion flow)
        auto_start: Start not_started sessions on mount
    """

    def __init__(
        self,
        simulation: Simulation,
        service: SimulationService,
        *,
        cadence: Optional[SaveCadence] = None,
        clock: Callable[[], float] = time.monotonic,
        refresh_listeners: Optional[List[RefreshListener]] = None,
        completion_listeners: Optional[List[CompletionListener]] = None,
        auto_start: bool = True,
    ) -> None:
        self.simulation = simulation
        self.session = simulation.state
        self.service = service
        self.refresh_listeners: List[RefreshListener] = refresh_listeners or []
        self.completion_listeners: List[CompletionListener] = completion_listeners or []
        self.auto_start = auto_start

        self.autosave = AutoSaveScheduler(
            service,
            self.session,
            cadence=cadence,
            clock=clock,
            listeners=[self._notify_refresh],
        )

        self.error: Optional[LabSimError] = None
        self.completion_ready = False
        self.mounted = False
        self._in_flight: Set[LifecycleEvent] = set()
        # One key per pending logical operation, reused until it succeeds.
        self._idempotency_keys: Dict[LifecycleEvent, str] = {}

    # View helpers ------------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    @property
    def loading(self) -> bool:
        return bool(self._in_flight)

    def dismiss_error(self) -> None:
        self.error = None

    def _surface(self, exc: LabSimError) -> None:
        self.error = exc
        log_error(f"{self.session.id}: {exc}")

    async def _notify_refresh(self) -> None:
        for listener in self.refresh_listeners:
            await _call_listener(listener)

    # Mount / unmount -----------------------------------------------------------------

    async def mount(self) -> None:
        """Start auto-save and auto-start a fresh session."""

        self.mounted = True
        self.autosave.start()
        if self.auto_start and self.session.status is SessionStatus.NOT_STARTED:
            log_info(f"Auto-starting simulation {self.session.id}")
            await self.start()
        else:
            log_info(f"Simulation {self.session.id} already {self.session.status.value}")

    async def unmount(self) -> None:
        """Stop the timer and attempt a best-effort final save."""

        self.mounted = False
        await self.autosave.stop(final_save=True)

    async def __aenter__(self) -> "SessionController":
        await self.mount()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.unmount()

    # Transitions ---------------------------------------------------------------------

    async def _run_transition(
        self,
        event: LifecycleEvent,
        call: Callable[[str], Awaitable[ServiceAck]],
        *,
        before: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> Optional[ServiceAck]:
        if event in self._in_flight:
            log_info(f"Ignoring duplicate {event.value} for {self.session.id}: already in flight")
            return None

        try:
            next_status(self.session.status, event)
        except InvalidTransitionError as exc:
            self._surface(exc)
            return None

        self._in_flight.add(event)
        try:
            if before is not None:
                await before()
            key = self._idempotency_keys.setdefault(event, uuid4().hex)
            ack = await call(key)
        except LabSimError as exc:
            self._surface(exc)
            return None
        finally:
            self._in_flight.discard(event)

        if not ack.success:
            self._surface(
                TransitionRejectedError(
                    simulation_id=self.session.id,
                    reason=ack.message or f"{event.value} was not accepted",
                )
            )
            return None

        self._idempotency_keys.pop(event, None)
        return ack

    async def start(self) -> bool:
        """not_started -> in_progress."""

        ack = await self._run_transition(
            LifecycleEvent.START,
            lambda key: self.service.start_simulation(self.session.id, key),
        )
        if ack is None:
            return False

        now = utcnow()
        self.session.status = SessionStatus.IN_PROGRESS
        self.session.started_at = now
        self.session.last_active_at = now
        self.autosave.confirm_transition(SessionStatus.IN_PROGRESS, ack.version)
        log_success(f"Simulation {self.session.id} started")
        return True

    async def pause(self) -> bool:
        """in_progress -> paused, saving progress first."""

        ack = await self._run_transition(
            LifecycleEvent.PAUSE,
            lambda key: self.service.pause_simulation(self.session.id, key),
            before=self.autosave.flush,
        )
        if ack is None:
            return False

        self.session.status = SessionStatus.PAUSED
        self.autosave.confirm_transition(SessionStatus.PAUSED, ack.version)
        log_success(f"Simulation {self.session.id} paused")
        return True

    async def resume(self) -> bool:
        """paused -> in_progress."""

        ack = await self._run_transition(
            LifecycleEvent.RESUME,
            lambda key: self.service.resume_simulation(self.session.id, key),
        )
        if ack is None:
            return False

        self.session.status = SessionStatus.IN_PROGRESS
        self.session.last_active_at = utcnow()
        self.autosave.confirm_transition(SessionStatus.IN_PROGRESS, ack.version)
        log_success(f"Simulation {self.session.id} resumed")
        return True

    # Steps -----------------------------------------------------------------------------

    async def record_step(
        self,
        step_index: int,
        step_data: Union[StepData, Dict[str, Any], None] = None,
    ) -> Optional[StepOutcome]:
        """Record a finished procedure step and advance progress.

        Progress never decreases and never exceeds 100. When it reaches 100
        the completion listeners fire instead of a save, so the view can
        open the completion flow.
        """

        if self.session.status is not SessionStatus.IN_PROGRESS:
            self._surface(
                InvalidTransitionError(current=self.session.status, event="record a step for")
            )
            return None
        if step_index < 0:
            self._surface(ValidationError("Step index cannot be negative", field="step_index"))
            return None

        data = step_data if isinstance(step_data, StepData) else StepData.model_validate(step_data or {})
        total_steps = self.simulation.total_steps
        step_progress = min(100.0, round((step_index + 1) * 100 / total_steps, 2))

        self.session.progress = max(self.session.progress, step_progress)
        self.session.current_step = max(self.session.current_step, step_index + 1)
        self.session.observations.append(
            Observation(
                step=step_index + 1,
                text=data.observation or f"Completed step {step_index + 1}",
            )
        )
        if data.inputs:
            self.session.user_inputs.update(data.inputs)

        outcome = StepOutcome(
            progress=self.session.progress,
            current_step=self.session.current_step,
            completion_ready=self.session.progress >= 100,
        )
        if outcome.completion_ready:
            await self._signal_completion_ready(outcome)
        else:
            await self.autosave.force_save()
        return outcome

    async def add_observation(self, text: str) -> Optional[Observation]:
        """Attach a free-form note to the current step and save it right away."""

        if self.session.status is not SessionStatus.IN_PROGRESS:
            self._surface(
                InvalidTransitionError(current=self.session.status, event="add an observation to")
            )
            return None
        text = (text or "").strip()
        if not text:
            self._surface(ValidationError("Observation text is required", field="observation"))
            return None

        observation = Observation(step=self.session.current_step, text=text)
        self.session.observations.append(observation)
        await self.autosave.flush()
        return observation

    async def _signal_completion_ready(self, outcome: StepOutcome) -> None:
        self.completion_ready = True
        log_info(f"Simulation {self.session.id} ready for completion")
        for listener in self.completion_listeners:
            await _call_listener(listener, outcome)

    # Completion --------------------------------------------------------------------------

    def build_final_results(self, final_results: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Consolidate the session into the payload sent on completion."""

        results: Dict[str, Any] = {
            "observations": [
                obs.model_dump(mode="json", by_alias=True) for obs in self.session.observations
            ],
            "userInputs": dict(self.session.user_inputs),
        }
        results.update(final_results or {})
        return results

    async def complete(
        self,
        final_results: Optional[Dict[str, Any]] = None,
        *,
        finalize: bool = False,
    ) -> bool:
        """Submit final results; in_progress/paused -> completed.

        Requires progress 100 unless ``finalize`` is set (the user explicitly
        submits early). On failure the session stays active and the user may
        retry; the retry reuses the same idempotency key.
        """

        if (
            self.session.status in ACTIVE_STATUSES
            and self.session.progress < 100
            and not finalize
        ):
            self._surface(
                InvalidTransitionError(
                    current=self.session.status,
                    event="complete",
                    detail="the procedure is not finished; finalize explicitly to submit early",
                )
            )
            return False

        payload = self.build_final_results(final_results)
        ack = await self._run_transition(
            LifecycleEvent.COMPLETE,
            lambda key: self.service.complete_simulation(self.session.id, payload, key),
        )
        if ack is None:
            return False

        self.session.status = SessionStatus.COMPLETED
        self.session.progress = 100.0
        self.session.completed_at = utcnow()
        self.completion_ready = False
        self.autosave.confirm_transition(SessionStatus.COMPLETED, ack.version)
        log_success(f"Simulation {self.session.id} completed")
        await self._notify_refresh()
        return True


__all__ = ["SessionController", "RefreshListener", "CompletionListener"]
