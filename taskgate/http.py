"""Flask application exposing the MCP gateway over streamable HTTP."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterator, Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from .mcp.gatekeeper import SESSION_HEADER, error_envelope
from .mcp.server import MCPGateway

logger = logging.getLogger(__name__)

SESSION_RESPONSE_HEADER = "Mcp-Session-Id"
DEFAULT_LOG_PAGE = 100
CORS_METHODS = ["GET", "POST", "DELETE", "OPTIONS"]
CORS_ALLOW_HEADERS = [
    "Content-Type",
    "Authorization",
    "Mcp-Session-Id",
    "Mcp-App-Id",
    "MCP-Protocol-Version",
    "Accept",
]


def _json_response(payload: Dict[str, Any], status: int = 200) -> Response:
    response = jsonify(payload)
    response.status_code = status
    return response


def _event_stream(gateway: MCPGateway) -> Iterator[str]:
    yield f"data: {json.dumps({'type': 'connected'})}\n\n"
    interval = gateway.config.heartbeat_interval
    while not gateway.shutdown_event.wait(interval):
        yield ": heartbeat\n\n"


def create_app(gateway: MCPGateway) -> Flask:
    """Create the Flask application serving ``gateway``.

    CORS is configured once here, so toggling ``cors_enabled`` afterwards
    requires a new application.
    """

    app = Flask(__name__)
    app.extensions["taskgate"] = gateway

    if gateway.config.cors_enabled:
        CORS(
            app,
            resources={r"/*": {"origins": "*"}},
            methods=CORS_METHODS,
            allow_headers=CORS_ALLOW_HEADERS,
            expose_headers=[SESSION_RESPONSE_HEADER],
            send_wildcard=True,
        )

    @app.before_request
    def answer_preflight() -> Optional[Response]:
        if request.method == "OPTIONS":
            return Response(status=200)
        return None

    @app.get("/health")
    def health() -> Response:
        return _json_response(gateway.health())

    @app.get("/")
    def index() -> Response:
        return _json_response(gateway.describe())

    @app.post("/mcp")
    async def mcp_post() -> Response:
        rejection = gateway.gatekeeper.check_transport(request.headers)
        if rejection is not None:
            return _json_response(rejection.envelope, rejection.status)
        gateway.record_request()

        try:
            message = json.loads(request.get_data(as_text=True))
        except ValueError as exc:
            logger.info("Rejected malformed JSON body: %s", exc)
            return _json_response(error_envelope(-32700, "Parse error"), 400)

        outcome = await gateway.dispatch(message, request.headers.get(SESSION_HEADER))
        if outcome.is_notification:
            return Response(status=202)

        response = _json_response(outcome.envelope)
        if outcome.session_header:
            response.headers[SESSION_RESPONSE_HEADER] = outcome.session_header
        return response

    @app.get("/mcp")
    def mcp_stream() -> Response:
        rejection = gateway.gatekeeper.check_transport(request.headers)
        if rejection is not None:
            return _json_response(rejection.envelope, rejection.status)

        logger.debug("Opening event stream")
        return Response(
            _event_stream(gateway),
            mimetype="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.delete("/mcp")
    def mcp_delete() -> Response:
        rejection = gateway.gatekeeper.check_transport(request.headers)
        if rejection is not None:
            return _json_response(rejection.envelope, rejection.status)

        session_id = request.headers.get(SESSION_HEADER)
        if session_id:
            gateway.sessions.terminate(session_id)
        return Response(status=204)

    @app.get("/logs")
    def logs_list() -> Response:
        """Recent tool calls, newest first, optionally filtered by ``q``."""

        rejection = gateway.gatekeeper.check_transport(request.headers)
        if rejection is not None:
            return _json_response(rejection.envelope, rejection.status)

        limit = request.args.get("limit", DEFAULT_LOG_PAGE, type=int)
        if limit is None or limit <= 0:
            limit = DEFAULT_LOG_PAGE
        entries = gateway.logs.search(request.args.get("q", ""))
        return _json_response(
            {
                "stats": gateway.logs.stats(),
                "entries": [entry.to_dict() for entry in entries[:limit]],
            }
        )

    @app.delete("/logs")
    def logs_clear() -> Response:
        rejection = gateway.gatekeeper.check_transport(request.headers)
        if rejection is not None:
            return _json_response(rejection.envelope, rejection.status)

        gateway.logs.clear()
        logger.info("Cleared tool call log")
        return Response(status=204)

    @app.errorhandler(404)
    def not_found(_error) -> Response:
        return _json_response(
            error_envelope(-32601, f"Path not found: {request.path}"), 404
        )

    @app.errorhandler(405)
    def method_not_allowed(_error) -> Response:
        return _json_response(
            error_envelope(-32601, f"Method not allowed: {request.method} {request.path}"),
            405,
        )

    @app.errorhandler(500)
    def internal_error(_error) -> Response:
        logger.error("Unhandled error serving %s %s", request.method, request.path)
        return _json_response(error_envelope(-32603, "Internal server error"), 500)

    return app


def run_server(gateway: MCPGateway, host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Serve ``gateway`` until interrupted, then stop it."""

    app = create_app(gateway)
    bind_host = host or gateway.config.host
    bind_port = port or gateway.config.port
    gateway.start()
    logger.info("Serving MCP on http://%s:%s/mcp", bind_host, bind_port)
    try:
        app.run(host=bind_host, port=bind_port, threaded=True, use_reloader=False)
    finally:
        gateway.stop()
