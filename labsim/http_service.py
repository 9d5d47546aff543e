"""REST client for the Remote Simulation Service.

Every call goes through ``perform_json_request`` on a worker thread. Server
responses use the envelope ``{"success": bool, "data": {...}, "message": str}``;
HTTP failures are mapped onto the labsim error taxonomy.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote, urlencode

from pydantic import ValidationError as SchemaValidationError

from .config import Config
from .errors import (
    LabSimError,
    SimulationNotFoundError,
    StaleStateError,
    TransientNetworkError,
    TransitionRejectedError,
    ValidationError,
)
from .logging_utils import log_error, log_network
from .schemas import (
    CreateSimulationRequest,
    ServiceAck,
    SessionStatus,
    Simulation,
    SimulationPage,
    StatePatch,
)
from .service import SimulationService
from .transport import HttpStatusError, HttpTransportError, perform_json_request


def _require_id(value: Optional[str], label: str = "Simulation ID") -> str:
    if not value:
        raise ValidationError(f"{label} is required", field=label)
    return value


def _message_from(body: Any, default: str) -> str:
    if isinstance(body, Mapping):
        return str(body.get("message") or body.get("error") or default)
    if isinstance(body, str) and body:
        return body
    return default


def _current_version(body: Any) -> Optional[int]:
    if not isinstance(body, Mapping):
        return None
    for source in (body, body.get("data") or {}):
        if isinstance(source, Mapping) and source.get("currentVersion") is not None:
            try:
                return int(source["currentVersion"])
            except (TypeError, ValueError):
                return None
    return None


class HttpSimulationService(SimulationService):
    """Simulation service backed by the platform's REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = (base_url or Config.API_BASE_URL).rstrip("/")
        self.token = token if token is not None else Config.API_TOKEN
        self.timeout = timeout if timeout is not None else Config.API_TIMEOUT_SECONDS

    def _headers(self, idempotency_key: Optional[str] = None) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        payload: Any = None,
        simulation_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        expected_version: Optional[int] = None,
        envelope: bool = False,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        log_network(f"{operation}: {method} {path}")
        try:
            body = await asyncio.to_thread(
                perform_json_request,
                method,
                url,
                payload=payload,
                headers=self._headers(idempotency_key),
                timeout=self.timeout,
            )
        except HttpTransportError as exc:
            log_error(f"{operation} could not reach the service: {exc}")
            raise TransientNetworkError(operation=operation, reason=str(exc)) from exc
        except HttpStatusError as exc:
            raise self._map_status_error(
                operation, simulation_id, exc, expected_version
            ) from exc

        if not isinstance(body, Mapping) or "success" not in body:
            if envelope:
                # A 2xx page from a proxy is not a confirmation.
                log_error(f"{operation} returned something other than a service envelope")
                raise TransientNetworkError(
                    operation=operation, reason="response was not a service envelope"
                )
            return dict(body) if isinstance(body, Mapping) else {}
        if body.get("success") is False:
            raise TransitionRejectedError(
                simulation_id=simulation_id or "-",
                reason=_message_from(body, f"{operation} was refused"),
            )
        return dict(body)

    def _map_status_error(
        self,
        operation: str,
        simulation_id: Optional[str],
        exc: HttpStatusError,
        expected_version: Optional[int],
    ) -> LabSimError:
        status = exc.status
        message = _message_from(exc.body, exc.reason or f"HTTP {status}")
        if status == 400:
            return ValidationError(message)
        if status == 404 and simulation_id:
            return SimulationNotFoundError(simulation_id)
        if status in (409, 422):
            current = _current_version(exc.body)
            if current is not None:
                return StaleStateError(
                    simulation_id=simulation_id or "-",
                    expected_version=expected_version,
                    current_version=current,
                )
            return TransitionRejectedError(simulation_id=simulation_id or "-", reason=message)
        return TransientNetworkError(operation=operation, reason=message, status=status)

    @staticmethod
    def _data(body: Mapping[str, Any]) -> Dict[str, Any]:
        data = body.get("data")
        return dict(data) if isinstance(data, Mapping) else {}

    def _ack(self, body: Mapping[str, Any]) -> ServiceAck:
        data = self._data(body)
        version = data.get("version", body.get("version"))
        return ServiceAck(
            success=bool(body["success"]),
            version=int(version) if version is not None else None,
            message=body.get("message"),
            data=data,
        )

    def _simulation(self, operation: str, body: Mapping[str, Any]) -> Simulation:
        data = self._data(body)
        try:
            return Simulation.model_validate(data.get("simulation", data))
        except SchemaValidationError as exc:
            log_error(f"{operation} returned an unreadable simulation: {exc.error_count()} errors")
            raise TransientNetworkError(
                operation=operation, reason="response did not contain a valid simulation"
            ) from exc

    # Interface ----------------------------------------------------------------

    async def create_simulation(self, request: CreateSimulationRequest) -> Simulation:
        body = await self._request(
            "createSimulation",
            "POST",
            "/simulation/generate",
            payload=request.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        return self._simulation("createSimulation", body)

    async def get_simulation(self, simulation_id: str) -> Simulation:
        _require_id(simulation_id)
        body = await self._request(
            "getSimulation",
            "GET",
            f"/simulation/{quote(simulation_id)}",
            simulation_id=simulation_id,
        )
        return self._simulation("getSimulation", body)

    async def list_student_simulations(
        self,
        student_id: str,
        *,
        page: int = 1,
        limit: int = 10,
        status: Optional[SessionStatus] = None,
        subject: Optional[str] = None,
    ) -> SimulationPage:
        _require_id(student_id, "Student ID")
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if status is not None:
            params["status"] = SessionStatus(status).value
        if subject:
            params["subject"] = subject
        body = await self._request(
            "getStudentSimulations",
            "GET",
            f"/simulation/student/{quote(student_id)}?{urlencode(params)}",
        )
        data = self._data(body)
        pagination = data.get("pagination") or {}
        try:
            simulations = [Simulation.model_validate(item) for item in data.get("simulations", [])]
            return SimulationPage(
                simulations=simulations,
                total=int(pagination.get("total", len(simulations))),
                page=int(pagination.get("page", page)),
                limit=int(pagination.get("limit", limit)),
            )
        except (SchemaValidationError, TypeError, ValueError) as exc:
            raise TransientNetworkError(
                operation="getStudentSimulations", reason="response did not contain a valid page"
            ) from exc

    async def update_simulation_state(self, simulation_id: str, patch: StatePatch) -> ServiceAck:
        _require_id(simulation_id)
        body = await self._request(
            "updateSimulationState",
            "PUT",
            f"/simulation/{quote(simulation_id)}/state",
            payload=patch.to_wire(),
            simulation_id=simulation_id,
            expected_version=patch.expected_version,
            envelope=True,
        )
        return self._ack(body)

    async def _lifecycle(
        self, operation: str, action: str, simulation_id: str, idempotency_key: Optional[str],
        payload: Any = None,
    ) -> ServiceAck:
        _require_id(simulation_id)
        body = await self._request(
            operation,
            "POST",
            f"/simulation/{quote(simulation_id)}/{action}",
            payload=payload,
            simulation_id=simulation_id,
            idempotency_key=idempotency_key,
            envelope=True,
        )
        return self._ack(body)

    async def start_simulation(
        self, simulation_id: str, idempotency_key: Optional[str] = None
    ) -> ServiceAck:
        return await self._lifecycle("startSimulation", "start", simulation_id, idempotency_key)

    async def pause_simulation(
        self, simulation_id: str, idempotency_key: Optional[str] = None
    ) -> ServiceAck:
        return await self._lifecycle("pauseSimulation", "pause", simulation_id, idempotency_key)

    async def resume_simulation(
        self, simulation_id: str, idempotency_key: Optional[str] = None
    ) -> ServiceAck:
        return await self._lifecycle("resumeSimulation", "resume", simulation_id, idempotency_key)

    async def complete_simulation(
        self,
        simulation_id: str,
        final_results: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> ServiceAck:
        payload = {"finalResults": final_results} if final_results else {}
        return await self._lifecycle(
            "completeSimulation", "complete", simulation_id, idempotency_key, payload
        )

    async def delete_simulation(self, simulation_id: str) -> None:
        _require_id(simulation_id)
        await self._request(
            "deleteSimulation",
            "DELETE",
            f"/simulation/{quote(simulation_id)}",
            simulation_id=simulation_id,
        )

    async def get_children_progress(self, parent_id: str) -> List[Dict[str, Any]]:
        _require_id(parent_id, "Parent ID")
        body = await self._request(
            "getChildrenSimulationProgress",
            "GET",
            f"/simulation/parent/{quote(parent_id)}/children",
        )
        data = body.get("data")
        if isinstance(data, list):
            return [dict(item) for item in data]
        if isinstance(data, Mapping):
            return [dict(item) for item in data.get("children", [])]
        return []


__all__ = ["HttpSimulationService"]
