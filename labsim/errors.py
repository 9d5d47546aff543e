"""Exception taxonomy for labsim.

Every error carries a human-readable message with remediation hints so the
view layer can show it directly. Which errors reach the user is decided by
the callers:

- ValidationError: raised before any network call, always surfaced.
- TransientNetworkError: surfaced for explicit user actions, swallowed by
  auto-save.
- TransitionRejectedError / StaleStateError: logged by auto-save (which
  self-heals), surfaced for explicit user actions.
- InvalidTransitionError: local state machine refusal, surfaced.
- ContentGenerationError: never escapes the content service; a fallback
  payload is used instead.
"""

from __future__ import annotations

from typing import Any, Optional


class LabSimError(Exception):
    """Base class for all labsim errors."""


class ValidationError(LabSimError, ValueError):
    """Raised when user input is malformed (prompt length, level, ids)."""

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        self.field = field
        super().__init__(message)


class TransientNetworkError(LabSimError):
    """Raised when a request failed, timed out, or the server errored."""

    def __init__(self, *, operation: str, reason: str, status: Optional[int] = None) -> None:
        self.operation = operation
        self.reason = reason
        self.status = status
        status_text = f" (HTTP {status})" if status is not None else ""
        message = (
            f"{operation} failed{status_text}: {reason}\n\n"
            "Remediation tips:\n"
            "  - Check LABSIM_API_BASE_URL and that the service is reachable\n"
            "  - Retry the action; local progress has been kept"
        )
        super().__init__(message)


class TransitionRejectedError(LabSimError):
    """Raised when the server refuses a status transition."""

    def __init__(self, *, simulation_id: str, reason: str) -> None:
        self.simulation_id = simulation_id
        self.reason = reason
        super().__init__(
            f"Simulation {simulation_id} rejected the update: {reason}"
        )


class StaleStateError(TransitionRejectedError):
    """Raised when a write carries an outdated version token."""

    def __init__(
        self,
        *,
        simulation_id: str,
        expected_version: Optional[int],
        current_version: Optional[int],
    ) -> None:
        self.expected_version = expected_version
        self.current_version = current_version
        super().__init__(
            simulation_id=simulation_id,
            reason=(
                f"stale write (client version {expected_version}, "
                f"server version {current_version})"
            ),
        )


class InvalidTransitionError(LabSimError):
    """Raised when the local state machine refuses an event."""

    def __init__(self, *, current: Any, event: str, detail: Optional[str] = None) -> None:
        self.current = current
        self.event = event
        current_value = getattr(current, "value", current)
        message = f"Cannot {event} a simulation that is {current_value}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class SimulationNotFoundError(LabSimError):
    """Raised when the service does not know the simulation id."""

    def __init__(self, simulation_id: str) -> None:
        self.simulation_id = simulation_id
        super().__init__(f"Simulation {simulation_id} not found")


class ContentGenerationError(LabSimError):
    """Raised internally when the AI content service cannot produce content."""

    def __init__(self, *, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"AI content generation failed for {operation}: {reason}")


__all__ = [
    "LabSimError",
    "ValidationError",
    "TransientNetworkError",
    "TransitionRejectedError",
    "StaleStateError",
    "InvalidTransitionError",
    "SimulationNotFoundError",
    "ContentGenerationError",
]
