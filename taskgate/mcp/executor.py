"""Tool execution: delegation to the task repository, shaping and call logging."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from ..logs import LogEntry, LogStore, exceeds_preview, truncate_for_log
from ..shaping import filter_response_fields, wants_projection
from .tools import ToolNotFoundError, ToolSpec, find_tool, get_tool_schema, list_tool_summaries

logger = logging.getLogger(__name__)

BridgeFactory = Callable[[], Any]


def _error_message(exc: BaseException) -> str:
    message = str(exc)
    if message:
        return message
    return exc.__class__.__name__


class ToolExecutor:
    """Run catalog tools against a lazily created task repository.

    ``bridge_factory`` is called at most once, on the first call that needs
    the repository; the instance is then shared by every later call.
    """

    def __init__(
        self,
        bridge_factory: BridgeFactory,
        logs: LogStore,
        *,
        tool_timeout: float = 30.0,
    ):
        self._bridge_factory = bridge_factory
        self._bridge: Any = None
        self._bridge_lock = threading.Lock()
        self.logs = logs
        self.tool_timeout = tool_timeout

    @property
    def bridge_ready(self) -> bool:
        return self._bridge is not None

    def get_bridge(self) -> Any:
        """Return the memoized repository, creating it on first use."""

        with self._bridge_lock:
            if self._bridge is None:
                logger.info("Initializing task repository")
                self._bridge = self._bridge_factory()
            return self._bridge

    async def execute(
        self,
        tool_name: Any,
        arguments: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Execute ``tool_name`` and return MCP tool-call content.

        Raises :class:`ToolNotFoundError` for names outside the catalog; every
        other failure is returned as an ``isError`` result.
        """

        args = arguments if isinstance(arguments, dict) else {}
        started = time.perf_counter()
        try:
            tool = find_tool(tool_name)
            if tool is None:
                raise ToolNotFoundError(tool_name)
            if tool.is_meta:
                result = self._run_meta(tool, args)
            else:
                result = await self._run_bridge(tool, args)
            shaped = filter_response_fields(
                result,
                args["fields"] if wants_projection(args) else None,
                strip_noise=args.get("raw") is not True,
            )
        except Exception as exc:  # pylint: disable=broad-except
            message = _error_message(exc)
            self._record(
                tool_name, args, session_id, started, result=None, error=message
            )
            if isinstance(exc, ToolNotFoundError):
                raise
            logger.warning("Tool %s failed: %s", tool_name, message)
            return self._error_result(message)

        self._record(tool_name, args, session_id, started, result=shaped)
        return {"content": [{"type": "text", "text": json.dumps(shaped, default=str)}]}

    def _run_meta(self, tool: ToolSpec, args: Dict[str, Any]) -> Any:
        if tool.name == "mcp_list_tools":
            return list_tool_summaries(args.get("category"))
        if tool.name == "mcp_get_tool_schema":
            target = args.get("toolName")
            if find_tool(target) is None:
                # unknown lookup targets are business errors
                raise LookupError(f"Tool '{target}' not found")
            return get_tool_schema(target)
        raise ToolNotFoundError(tool.name)

    async def _run_bridge(self, tool: ToolSpec, args: Dict[str, Any]) -> Any:
        bridge = self.get_bridge()
        outcome = tool.handler(bridge, args)
        if not inspect.isawaitable(outcome):
            return outcome
        if self.tool_timeout and self.tool_timeout > 0:
            try:
                return await asyncio.wait_for(outcome, timeout=self.tool_timeout)
            except asyncio.TimeoutError as exc:
                raise TimeoutError(
                    f"Tool execution timed out after {self.tool_timeout:g}s"
                ) from exc
        return await outcome

    def _record(
        self,
        tool_name: Any,
        args: Dict[str, Any],
        session_id: Optional[str],
        started: float,
        *,
        result: Any,
        error: Optional[str] = None,
    ) -> None:
        duration_ms = (time.perf_counter() - started) * 1000
        self.logs.add(
            LogEntry(
                method="tools/call",
                arguments=args,
                result=None if error is not None else truncate_for_log(result),
                duration_ms=duration_ms,
                session_id=session_id,
                tool_name=str(tool_name) if tool_name is not None else None,
                error=error,
                truncated=error is None and exceeds_preview(result),
            )
        )
        logger.debug(
            "Tool %s finished in %.1fms (error=%s)", tool_name, duration_ms, error
        )

    @staticmethod
    def _error_result(message: str) -> Dict[str, Any]:
        payload = {"success": False, "error": message}
        content: List[Dict[str, Any]] = [
            {"type": "text", "text": json.dumps(payload, indent=2)}
        ]
        return {"content": content, "isError": True}
