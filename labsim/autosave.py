"""Auto-save policy for simulation sessions.

The scheduler pushes the local session to the Remote Simulation Service
without flooding it:

* a repeating timer fires every ``interval`` seconds and saves when at least
  ``interval`` seconds passed since the last successful save;
* ``force_save`` skips the timer check but still honours ``cooldown`` so a
  burst of step completions produces one request;
* ``flush`` ignores both and waits for a save already in flight, then
  saves again (pause and teardown persist definitively).

Patches only carry fields that differ from the last server-confirmed
snapshot, plus the version token of that snapshot. All save failures are
logged and swallowed; the next attempt retries with the then-current state.
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import inspect
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .config import Config
from .errors import LabSimError, StaleStateError
from .logging_utils import log_error, log_info, log_success
from .schemas import ServiceAck, SessionStatus, SimulationSession, StatePatch, utcnow
from .service import SimulationService


SaveListener = Callable[[], Union[None, Awaitable[None]]]

# Fields diffed against the server snapshot, in patch order.
TRACKED_FIELDS = (
    "status",
    "progress",
    "current_step",
    "user_inputs",
    "observations",
    "score",
    "game_state",
)


@dataclass(frozen=True)
class SaveCadence:
    """Timer interval and burst cooldown, in seconds."""

    interval: float = field(default_factory=lambda: Config.AUTOSAVE_INTERVAL_SECONDS)
    cooldown: float = field(default_factory=lambda: Config.AUTOSAVE_COOLDOWN_SECONDS)

    def is_due(self, *, now: float, last_saved_at: float) -> bool:
        """Return ``True`` when a scheduled save should run."""

        return now - last_saved_at >= self.interval

    def cooled_down(self, *, now: float, last_saved_at: float) -> bool:
        """Return ``True`` when a forced save is allowed."""

        return now - last_saved_at >= self.cooldown


def _snapshot_value(session: SimulationSession, name: str) -> Any:
    value = getattr(session, name)
    if name == "observations":
        return [obs.model_dump() for obs in value]
    return copy.deepcopy(value)


def snapshot_session(session: SimulationSession) -> Dict[str, Any]:
    """Comparable copy of the tracked fields of ``session``."""

    return {name: _snapshot_value(session, name) for name in TRACKED_FIELDS}


class AutoSaveScheduler:
    """Timer-driven, single-task persistence of one session.

    ``confirmed`` holds the last values known to be accepted by the server;
    a patch never repeats them, so a strict server never sees a redundant
    ``status``. Only one save runs at a time: a timer or forced save requested
    while another is in flight is skipped, a flush queues behind it.
    """

    def __init__(
        self,
        service: SimulationService,
        session: SimulationSession,
        *,
        cadence: Optional[SaveCadence] = None,
        clock: Callable[[], float] = time.monotonic,
        listeners: Optional[List[SaveListener]] = None,
    ) -> None:
        self.service = service
        self.session = session
        self.cadence = cadence or SaveCadence()
        self.clock = clock
        self.listeners: List[SaveListener] = listeners or []

        self.confirmed: Dict[str, Any] = snapshot_session(session)
        self.confirmed_version: Optional[int] = session.version
        self.last_saved_at: float = clock()
        self.saves_sent = 0
        self.failures = 0

        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    # Patch construction --------------------------------------------------------

    def build_patch(self) -> StatePatch:
        """Diff the session against the confirmed snapshot."""

        changes: Dict[str, Any] = {}
        for name in TRACKED_FIELDS:
            if _snapshot_value(self.session, name) != self.confirmed[name]:
                changes[name] = getattr(self.session, name)

        now = utcnow()
        self.session.last_active_at = now
        changes["last_active_at"] = now
        if self.confirmed_version is not None:
            changes["expected_version"] = self.confirmed_version
        return StatePatch(**changes)

    def confirm(self, sent: Dict[str, Any], ack: ServiceAck) -> None:
        """Mark the values captured in ``sent`` as accepted by the server."""

        self.confirmed.update(sent)
        self._adopt_version(ack.version)

    def confirm_transition(self, status: SessionStatus, version: Optional[int]) -> None:
        """Record a lifecycle transition the server accepted outside auto-save."""

        self.confirmed["status"] = SessionStatus(status)
        if status is SessionStatus.COMPLETED:
            self.confirmed["progress"] = 100.0
        self._adopt_version(version)

    def _adopt_version(self, version: Optional[int]) -> None:
        if version is not None:
            self.confirmed_version = version
            self.session.version = version

    async def _resync_from_server(self) -> None:
        try:
            simulation = await self.service.get_simulation(self.session.id)
        except LabSimError as exc:
            log_error(f"Could not refresh server state for {self.session.id}: {exc}")
            return
        self.confirmed = snapshot_session(simulation.state)
        self._adopt_version(simulation.state.version)
        log_info(
            f"Adopted server version {self.confirmed_version} for {self.session.id}; "
            "next save will carry local changes"
        )

    # Saving ----------------------------------------------------------------------

    async def _save(self, reason: str, *, wait: bool = False) -> bool:
        if self._lock.locked():
            if not wait:
                log_info(f"Skipping {reason} save for {self.session.id}: save already in flight")
                return False
            log_info(f"Waiting for the in-flight save of {self.session.id} before {reason}")

        async with self._lock:
            saved = await self._save_now(reason)
        if saved:
            await self._notify()
        return saved

    async def _save_now(self, reason: str) -> bool:
        patch = self.build_patch()
        # Captured before the await so later local edits stay unconfirmed.
        sent = {
            name: _snapshot_value(self.session, name)
            for name in patch.changed_fields()
            if name in self.confirmed
        }
        self.saves_sent += 1
        try:
            ack = await self.service.update_simulation_state(self.session.id, patch)
        except StaleStateError as exc:
            self.failures += 1
            log_error(f"Auto-save ({reason}) hit a version conflict: {exc}")
            await self._resync_from_server()
            return False
        except LabSimError as exc:
            # Never interrupt the experiment; the next save retries with current state.
            self.failures += 1
            log_error(f"Auto-save ({reason}) failed for {self.session.id}: {exc}")
            return False

        self.confirm(sent, ack)
        self.last_saved_at = self.clock()
        fields = ", ".join(sorted(patch.changed_fields()))
        log_success(f"Saved {self.session.id} ({reason}): {fields}")
        return True

    async def _notify(self) -> None:
        for listener in self.listeners:
            result = listener()
            if inspect.isawaitable(result):
                await result

    async def tick(self) -> bool:
        """Timer callback: save if the interval elapsed since the last save."""

        if not self.cadence.is_due(now=self.clock(), last_saved_at=self.last_saved_at):
            return False
        return await self._save("scheduled")

    async def force_save(self) -> bool:
        """Save now unless the last save happened within the cooldown."""

        if not self.cadence.cooled_down(now=self.clock(), last_saved_at=self.last_saved_at):
            return False
        return await self._save("forced")

    async def flush(self) -> bool:
        """Save now regardless of timer and cooldown.

        Waits for a save already in flight, then sends its own patch.
        """

        return await self._save("flush", wait=True)

    # Timer -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.cadence.interval)
            await self.tick()

    def start(self) -> None:
        """Start the repeating timer on the running event loop."""

        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self, *, final_save: bool = True) -> bool:
        """Stop the timer and optionally attempt one last save (best effort)."""

        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        if not final_save:
            return False
        saved = await self.flush()
        if not saved:
            log_error(f"Final save for {self.session.id} did not go through; not retrying")
        return saved


__all__ = ["AutoSaveScheduler", "SaveCadence", "snapshot_session", "TRACKED_FIELDS"]
