"""Ordered request checks applied before a message reaches the dispatcher."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from ..auth import parse_bearer, tokens_match
from ..config import ServerConfig
from ..sessions import SessionStore

logger = logging.getLogger(__name__)

SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2024-11-05")
LATEST_PROTOCOL_VERSION = SUPPORTED_PROTOCOL_VERSIONS[0]

SESSION_HEADER = "mcp-session-id"
APP_ID_HEADER = "mcp-app-id"
PROTOCOL_VERSION_HEADER = "mcp-protocol-version"


def error_envelope(
    code: int, message: str, data: Optional[Dict[str, Any]] = None, message_id: Any = None
) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": message_id, "error": error}


@dataclass(frozen=True)
class GateRejection:
    """A failed check: the HTTP status and JSON-RPC body to answer with."""

    status: int
    envelope: Dict[str, Any]

    @property
    def message(self) -> str:
        return self.envelope["error"]["message"]


def _lower_keys(headers: Mapping[str, str]) -> Dict[str, str]:
    return {str(key).lower(): value for key, value in headers.items()}


class Gatekeeper:
    """Origin, protocol version, token, client identity and session checks.

    ``config`` may be replaced at runtime; each check reads the current value.
    """

    def __init__(self, config: ServerConfig, sessions: SessionStore):
        self.config = config
        self.sessions = sessions

    def origin_allowed(self, origin: str) -> bool:
        for allowed in self.config.allowed_origins:
            if origin == allowed or origin.startswith(allowed + ":"):
                return True
        return False

    def check_transport(self, headers: Mapping[str, str]) -> Optional[GateRejection]:
        """Run the header checks; return the first rejection or ``None``."""

        normalized = _lower_keys(headers)

        origin = normalized.get("origin")
        if origin and not self.origin_allowed(origin):
            logger.warning("Rejected request from origin %s", origin)
            return GateRejection(
                403, error_envelope(-32603, "Forbidden: Origin not allowed")
            )

        version = normalized.get(PROTOCOL_VERSION_HEADER)
        if version and version not in SUPPORTED_PROTOCOL_VERSIONS:
            return GateRejection(
                400,
                error_envelope(-32602, f"Unsupported MCP-Protocol-Version: {version}"),
            )

        token, bearer_client_id = parse_bearer(normalized.get("authorization"))
        if not tokens_match(token, self.config.auth_token):
            logger.warning("Rejected request with invalid or missing token")
            return GateRejection(
                401,
                error_envelope(
                    -32603, "Unauthorized: Invalid or missing authentication token"
                ),
            )

        return self._check_client_identity(normalized.get(APP_ID_HEADER), bearer_client_id)

    def _check_client_identity(
        self, header_app_id: Optional[str], bearer_client_id: Optional[str]
    ) -> Optional[GateRejection]:
        if header_app_id:
            received, source = header_app_id, "header"
        elif bearer_client_id:
            received, source = bearer_client_id, "authorization"
        else:
            received, source = None, "none"

        expected = self.config.instance_id
        if received and expected and received == expected:
            return None

        logger.warning(
            "Rejected client app id %s (source=%s, expected=%s)", received, source, expected
        )
        return GateRejection(
            400,
            error_envelope(
                -32602,
                "Invalid client app id",
                data={"expectedAppId": expected, "received": received, "source": source},
            ),
        )

    def check_session(
        self, method: Any, session_id: Optional[str], message_id: Any = None
    ) -> Optional[GateRejection]:
        """Require a live session for every method except ``initialize``.

        Failures are protocol errors delivered with HTTP 200.
        """

        if method == "initialize":
            return None
        if not session_id:
            return GateRejection(
                200,
                error_envelope(
                    -32603,
                    "Missing session ID. Initialize connection first.",
                    message_id=message_id,
                ),
            )
        if not self.sessions.touch(session_id):
            return GateRejection(
                200,
                error_envelope(-32603, "Invalid or expired session", message_id=message_id),
            )
        return None
