"""JSON-RPC dispatcher implementing the Model Context Protocol surface for taskgate."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .. import __version__ as PACKAGE_VERSION
from ..config import ServerConfig, resolve_log_level
from ..logs import LogStore
from ..sessions import SessionStore, SessionSweeper
from .executor import BridgeFactory, ToolExecutor
from .gatekeeper import (
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    Gatekeeper,
)
from .prompts import PromptNotFoundError, get_prompt, list_prompts
from .tools import ToolNotFoundError, get_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "taskgate"
PACKAGE_LOGGER = "taskgate"
NOTIFICATION_PREFIX = "notifications/"


@dataclass
class MCPError(Exception):
    """Structured error raised for MCP request failures."""

    code: int
    message: str
    data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error into a JSON-RPC compliant dictionary."""

        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of one dispatched message.

    ``envelope`` is ``None`` for notifications. ``session_header`` carries the
    id created by ``initialize`` so the transport can send it out of band.
    """

    envelope: Optional[Dict[str, Any]]
    session_header: Optional[str] = None

    @property
    def is_notification(self) -> bool:
        return self.envelope is None


class MCPGateway:
    """Session-aware JSON-RPC gateway in front of a task repository.

    Sessions and call logs are owned by the instance, so independent gateways
    (and their clocks) never share state.
    """

    def __init__(
        self,
        bridge_factory: BridgeFactory,
        config: Optional[ServerConfig] = None,
        *,
        sessions: Optional[SessionStore] = None,
        logs: Optional[LogStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or ServerConfig()
        self.sessions = sessions or SessionStore(
            idle_timeout=self.config.session_idle_timeout, clock=clock
        )
        self.logs = logs or LogStore(self.config.log_capacity)
        self.gatekeeper = Gatekeeper(self.config, self.sessions)
        self.executor = ToolExecutor(
            bridge_factory, self.logs, tool_timeout=self.config.tool_timeout
        )
        self._sweeper = SessionSweeper(self.sessions, self.config.session_sweep_interval)
        self.shutdown_event = threading.Event()
        self._clock = clock
        self._started_at = clock()
        self._request_count = 0
        self._counter_lock = threading.Lock()
        self._methods: Dict[str, Callable[[Dict[str, Any], Optional[str]], Awaitable[Any]]] = {
            "initialize": self._handle_initialize,
            "ping": self._handle_ping,
            "logging/setLevel": self._handle_logging_set_level,
            "tools/list": self._handle_tools_list,
            "tools/call": self._handle_tools_call,
            "prompts/list": self._handle_prompts_list,
            "prompts/get": self._handle_prompts_get,
            "resources/list": self._handle_resources_list,
            "resources/read": self._handle_resources_read,
        }

    # lifecycle -----------------------------------------------------------

    def start(self) -> None:
        """Start the background session sweeper."""

        self._started_at = self._clock()
        self.shutdown_event.clear()
        self._sweeper.start()
        logger.info(
            "taskgate gateway started (instance=%s)", self.config.instance_id or "<unset>"
        )

    def stop(self) -> None:
        """Stop the sweeper, close event streams and drop every session."""

        self.shutdown_event.set()
        self._sweeper.stop(timeout=5)
        self.sessions.clear()
        logger.info("taskgate gateway stopped")

    def update_config(self, **changes: Any) -> ServerConfig:
        """Apply runtime setting changes to every component that reads them."""

        if "log_level" in changes and resolve_log_level(changes["log_level"]) is None:
            raise ValueError(f"Unsupported log level: {changes['log_level']}")
        self.config = self.config.update(**changes)
        self.gatekeeper.config = self.config
        self.executor.tool_timeout = self.config.tool_timeout
        self.sessions.idle_timeout = self.config.session_idle_timeout
        self._sweeper.interval = self.config.session_sweep_interval
        if "log_level" in changes:
            logging.getLogger(PACKAGE_LOGGER).setLevel(self.config.resolved_log_level)
        logger.info("Updated server settings: %s", sorted(changes))
        return self.config

    # status --------------------------------------------------------------

    def record_request(self) -> None:
        with self._counter_lock:
            self._request_count += 1

    @property
    def request_count(self) -> int:
        with self._counter_lock:
            return self._request_count

    def health(self) -> Dict[str, Any]:
        uptime_ms = int((self._clock() - self._started_at) * 1000)
        return {
            "status": "healthy",
            "uptime": uptime_ms,
            "requestCount": self.request_count,
            "sessions": len(self.sessions),
        }

    def describe(self) -> Dict[str, Any]:
        return {
            "server": SERVER_NAME,
            "version": PACKAGE_VERSION,
            "mcp_version": LATEST_PROTOCOL_VERSION,
            "endpoints": {"mcp": "/mcp", "health": "/health", "logs": "/logs"},
            "description": "MCP gateway exposing task management tools to AI agents",
        }

    # dispatch ------------------------------------------------------------

    async def dispatch(
        self, message: Any, session_id: Optional[str] = None
    ) -> DispatchResult:
        """Process a single JSON-RPC message.

        Never raises: protocol failures become error envelopes and anything
        unexpected becomes an internal error envelope.
        """

        message_id = message.get("id") if isinstance(message, dict) else None
        try:
            method, params = self._validate_request(message)
            logger.info("MCP request %s (id=%s)", method, message_id)
            logger.debug("MCP request payload: %s", message)

            if self._is_notification(message, method):
                logger.debug("Notification %s acknowledged", method)
                return DispatchResult(None)

            rejection = self.gatekeeper.check_session(method, session_id, message_id)
            if rejection is not None:
                logger.info("Session check failed for %s: %s", method, rejection.message)
                return DispatchResult(rejection.envelope)

            handler = self._methods.get(method)
            if handler is None:
                raise MCPError(code=-32601, message=f"Method not found: {method}")

            if method == "initialize":
                new_session = self.sessions.create()
                result = await handler(params, new_session)
                envelope = self._result_envelope(message_id, result)
                logger.info("Initialized session %s", new_session)
                return DispatchResult(envelope, session_header=new_session)

            result = await handler(params, session_id)
        except MCPError as exc:
            logger.info("MCP error for id=%s: %s", message_id, exc.message)
            return DispatchResult(self._error_envelope(message_id, exc))
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unhandled exception while dispatching MCP message")
            error = MCPError(code=-32603, message="Internal error", data={"detail": str(exc)})
            return DispatchResult(self._error_envelope(message_id, error))

        envelope = self._result_envelope(message_id, result)
        logger.debug("MCP response payload (id=%s): %s", message_id, envelope)
        return DispatchResult(envelope)

    @staticmethod
    def _validate_request(message: Any) -> tuple[str, Dict[str, Any]]:
        if not isinstance(message, dict) or message.get("jsonrpc") != "2.0":
            raise MCPError(code=-32600, message="Invalid Request")

        method = message.get("method")
        if not isinstance(method, str):
            raise MCPError(code=-32600, message="Method must be a string")

        params = message.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise MCPError(code=-32602, message="Params must be an object")
        return method, params

    @staticmethod
    def _is_notification(message: Dict[str, Any], method: str) -> bool:
        return message.get("id") is None and method.startswith(NOTIFICATION_PREFIX)

    @staticmethod
    def _result_envelope(message_id: Any, result: Any) -> Dict[str, Any]:
        return {"jsonrpc": "2.0", "id": message_id, "result": result}

    @staticmethod
    def _error_envelope(message_id: Any, error: MCPError) -> Dict[str, Any]:
        return {"jsonrpc": "2.0", "id": message_id, "error": error.to_dict()}

    # handlers ------------------------------------------------------------

    async def _handle_initialize(
        self, params: Dict[str, Any], _session_id: Optional[str]
    ) -> Dict[str, Any]:
        """Negotiate the protocol version and advertise capabilities."""

        requested = params.get("protocolVersion")
        if isinstance(requested, str) and requested.strip() in SUPPORTED_PROTOCOL_VERSIONS:
            negotiated = requested.strip()
        else:
            if requested:
                logger.warning(
                    "Unsupported protocol requested: %s; offering %s",
                    requested,
                    LATEST_PROTOCOL_VERSION,
                )
            negotiated = LATEST_PROTOCOL_VERSION

        client_info = params.get("clientInfo")
        if isinstance(client_info, dict):
            logger.info(
                "Initialize from client %s %s",
                client_info.get("name"),
                client_info.get("version"),
            )

        return {
            "protocolVersion": negotiated,
            "serverInfo": {"name": SERVER_NAME, "version": PACKAGE_VERSION},
            "capabilities": {
                "tools": {},
                "resources": {},
                "prompts": {},
                "logging": {},
            },
            "instructions": (
                "Use mcp_list_tools to discover the task tools, then "
                "mcp_get_tool_schema for parameter details. Pass 'fields' to "
                "limit task payloads and 'raw': true to keep internal fields."
            ),
        }

    async def _handle_ping(
        self, _params: Dict[str, Any], _session_id: Optional[str]
    ) -> Dict[str, Any]:
        return {}

    async def _handle_logging_set_level(
        self, params: Dict[str, Any], _session_id: Optional[str]
    ) -> Dict[str, Any]:
        """Adjust the effective log level of the gateway."""

        level = params.get("level")
        resolved = resolve_log_level(level)
        if resolved is None:
            raise MCPError(code=-32602, message=f"Unsupported log level: {level}")

        logging.getLogger().setLevel(resolved)
        logging.getLogger(PACKAGE_LOGGER).setLevel(resolved)
        return {}

    async def _handle_tools_list(
        self, _params: Dict[str, Any], _session_id: Optional[str]
    ) -> Dict[str, Any]:
        return {"tools": get_tools()}

    async def _handle_tools_call(
        self, params: Dict[str, Any], session_id: Optional[str]
    ) -> Dict[str, Any]:
        """Invoke a catalog tool; unknown names are protocol errors."""

        name = params.get("name")
        arguments = params.get("arguments")
        if not isinstance(name, str) or not name.strip():
            raise MCPError(code=-32602, message="name must be a non-empty string")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise MCPError(code=-32602, message="arguments must be an object")

        try:
            return await self.executor.execute(name.strip(), arguments, session_id)
        except ToolNotFoundError as exc:
            raise MCPError(code=-32602, message=str(exc)) from exc

    async def _handle_prompts_list(
        self, _params: Dict[str, Any], _session_id: Optional[str]
    ) -> Dict[str, Any]:
        return {"prompts": list_prompts()}

    async def _handle_prompts_get(
        self, params: Dict[str, Any], _session_id: Optional[str]
    ) -> Dict[str, Any]:
        try:
            return get_prompt(params.get("name"), params.get("arguments"))
        except PromptNotFoundError as exc:
            raise MCPError(code=-32602, message=str(exc)) from exc

    async def _handle_resources_list(
        self, _params: Dict[str, Any], _session_id: Optional[str]
    ) -> Dict[str, Any]:
        resources: List[Dict[str, Any]] = []
        return {"resources": resources}

    async def _handle_resources_read(
        self, _params: Dict[str, Any], _session_id: Optional[str]
    ) -> Dict[str, Any]:
        raise MCPError(code=-32602, message="No resources available")
