"""Async client for the Reclaim.ai REST API."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from reclaim_mcp import config
from reclaim_mcp.errors import InvalidInputError, ReclaimError
from reclaim_mcp.models import AccountInfo, Task

logger = logging.getLogger(__name__)

_SUCCESS = {"success": True}


class ReclaimClient:
    """Thin wrapper over the task and planner endpoints.

    Every failure surfaces as a ReclaimError carrying the HTTP status and the
    decoded response body when there is one.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._http = httpx.AsyncClient(
            base_url=base_url or config.api_base(),
            timeout=timeout if timeout is not None else config.http_timeout(),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    def _token(self) -> str:
        token = self._api_key or config.api_key()
        if not token:
            raise ReclaimError(
                "RECLAIM_API_KEY environment variable is not set. Configure it before using Reclaim tools."
            )
        return token

    async def _request(
        self,
        method: str,
        path: str,
        context: str,
        json_body: Any = None,
        params: dict | None = None,
    ) -> Any:
        headers = {"Authorization": f"Bearer {self._token()}"}
        try:
            response = await self._http.request(method, path, json=json_body, params=params, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = _decode(exc.response)
            message = None
            if isinstance(detail, dict):
                message = detail.get("message") or detail.get("title")
            message = message or str(exc)
            logger.error("Reclaim API error (%s) - status %s: %s", context, exc.response.status_code, detail)
            raise ReclaimError(f"API Call Failed ({context}): {message}", exc.response.status_code, detail) from exc
        except httpx.RequestError as exc:
            logger.error("Reclaim API request failed (%s): %s", context, exc)
            raise ReclaimError(f"API Call Failed ({context}): {exc}") from exc
        return _decode(response)

    # -- tasks -------------------------------------------------------------

    async def list_tasks(self) -> list[Task]:
        data = await self._request("GET", "tasks", "listTasks")
        if not isinstance(data, list):
            return []
        return [Task.from_dict(item) for item in data if isinstance(item, dict)]

    async def get_task(self, task_id: int) -> Task:
        data = await self._request("GET", f"tasks/{task_id}", f"getTask(taskId={task_id})")
        return Task.from_dict(data or {})

    async def create_task(self, payload: dict) -> Task:
        data = await self._request("POST", "tasks", "createTask", json_body=payload)
        return Task.from_dict(data or {})

    async def create_task_at_time(self, start_time: str, payload: dict) -> Any:
        """Create a task placed at ``start_time``. Returns Reclaim's view object as-is."""
        data = await self._request(
            "POST",
            "tasks/at-time",
            f"createTaskAtTime(startTime={start_time})",
            json_body=payload,
            params={"startTime": start_time},
        )
        return data if data is not None else _SUCCESS

    async def update_task(self, task_id: int, payload: dict) -> Task:
        if not payload:
            logger.warning("update_task called for %s with no fields; returning current state.", task_id)
            return await self.get_task(task_id)
        data = await self._request("PATCH", f"tasks/{task_id}", f"updateTask(taskId={task_id})", json_body=payload)
        return Task.from_dict(data or {})

    async def delete_task(self, task_id: int) -> None:
        await self._request("DELETE", f"tasks/{task_id}", f"deleteTask(taskId={task_id})")

    # -- planner actions ---------------------------------------------------

    async def _planner(self, action: str, task_id: int, context: str, params: dict | None = None) -> Any:
        data = await self._request("POST", f"planner/{action}/task/{task_id}", context, params=params)
        return data if data is not None else _SUCCESS

    async def mark_complete(self, task_id: int) -> Any:
        return await self._planner("done", task_id, f"markTaskComplete(taskId={task_id})")

    async def mark_incomplete(self, task_id: int) -> Any:
        return await self._planner("unarchive", task_id, f"markTaskIncomplete(taskId={task_id})")

    async def add_time(self, task_id: int, minutes: int) -> Any:
        if minutes <= 0:
            raise InvalidInputError("Minutes must be positive to add time.")
        return await self._planner(
            "add-time", task_id, f"addTimeToTask(taskId={task_id}, minutes={minutes})", {"minutes": minutes}
        )

    async def start_timer(self, task_id: int) -> Any:
        return await self._planner("start", task_id, f"startTaskTimer(taskId={task_id})")

    async def stop_timer(self, task_id: int) -> Any:
        return await self._planner("stop", task_id, f"stopTaskTimer(taskId={task_id})")

    async def log_work(self, task_id: int, minutes: int, end: str | None = None) -> Any:
        """Log ``minutes`` of work. ``end`` must already be a resolved UTC instant."""
        if minutes <= 0:
            raise InvalidInputError("Minutes must be positive to log work.")
        params: dict[str, Any] = {"minutes": minutes}
        if end:
            params["end"] = end
        return await self._planner(
            "log-work", task_id, f"logWorkForTask(taskId={task_id}, minutes={minutes}, end={end or 'now'})", params
        )

    async def clear_exceptions(self, task_id: int) -> Any:
        return await self._planner("clear-exceptions", task_id, f"clearTaskExceptions(taskId={task_id})")

    async def prioritize(self, task_id: int) -> Any:
        return await self._planner("prioritize", task_id, f"prioritizeTask(taskId={task_id})")

    # -- account -----------------------------------------------------------

    async def get_current_user(self) -> dict:
        data = await self._request("GET", "users/current", "getCurrentUser")
        return data if isinstance(data, dict) else {}

    async def fetch_account_info(self) -> AccountInfo:
        return AccountInfo.from_user(await self.get_current_user())


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, httpx.DecodingError, UnicodeDecodeError):
        return response.text
