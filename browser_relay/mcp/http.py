"""
HTTP front door for the MCP streamable HTTP transport.

Routes ``POST``/``GET``/``DELETE`` on the MCP path to the SessionManager and
converts protocol errors into JSON-RPC error envelopes with the matching
HTTP status.
"""

import logging
from typing import Optional

from aiohttp import web

from ..config import RelayConfig
from ..relay.errors import INTERNAL_ERROR, ProtocolError
from ..relay.service import RelayService
from .protocol import PROTOCOL_VERSION_HEADER, SESSION_ID_HEADER, error_body
from .session_manager import SessionManager

logger = logging.getLogger(__name__)

ALLOWED_METHODS = "GET, POST, DELETE, OPTIONS"
ALLOWED_HEADERS = f"Content-Type, Accept, Authorization, {SESSION_ID_HEADER}, {PROTOCOL_VERSION_HEADER}, Last-Event-ID"

SESSION_MANAGER_KEY = web.AppKey("session_manager", SessionManager)
RELAY_KEY = web.AppKey("relay", RelayService)
CONFIG_KEY = web.AppKey("config", RelayConfig)


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Render relay errors as JSON-RPC error bodies."""
    try:
        return await handler(request)
    except ProtocolError as e:
        logger.info(f"{request.method} {request.path} rejected with {e.http_status}: {e.message}")
        headers = {SESSION_ID_HEADER: e.session_id} if e.session_id else None
        return web.json_response(error_body(e.error_code, e.message), status=e.http_status, headers=headers)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error handling {request.method} {request.path}: {e}", exc_info=True)
        return web.json_response(error_body(INTERNAL_ERROR, "Internal server error"), status=500)


def _cors_hook(origins):
    allowed = set(origins)

    async def on_response_prepare(request: web.Request, response: web.StreamResponse):
        origin = request.headers.get("Origin")
        if origin is None:
            return
        if "*" in allowed:
            response.headers["Access-Control-Allow-Origin"] = "*"
        elif origin in allowed:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
        else:
            return
        response.headers["Access-Control-Expose-Headers"] = f"{SESSION_ID_HEADER}, {PROTOCOL_VERSION_HEADER}"

    return on_response_prepare


async def handle_post(request: web.Request) -> web.StreamResponse:
    return await request.app[SESSION_MANAGER_KEY].handle_post(request)


async def handle_get(request: web.Request) -> web.StreamResponse:
    return await request.app[SESSION_MANAGER_KEY].handle_get(request)


async def handle_delete(request: web.Request) -> web.StreamResponse:
    return await request.app[SESSION_MANAGER_KEY].handle_delete(request)


async def handle_options(request: web.Request) -> web.Response:
    """Handle CORS preflight requests."""
    return web.Response(
        status=204,
        headers={
            "Access-Control-Allow-Methods": ALLOWED_METHODS,
            "Access-Control-Allow-Headers": ALLOWED_HEADERS,
            "Access-Control-Max-Age": "600"
        }
    )


async def handle_health(request: web.Request) -> web.Response:
    """Report extension connectivity, pending calls and open sessions."""
    relay = request.app[RELAY_KEY]
    sessions = request.app[SESSION_MANAGER_KEY]
    status = relay.status()
    return web.json_response({
        "status": "ok",
        "extension": status["channel"],
        "pending_calls": status["pending"],
        "sessions": sessions.status()
    })


def create_app(
    session_manager: SessionManager,
    relay: RelayService,
    config: Optional[RelayConfig] = None
) -> web.Application:
    """
    Build the aiohttp application.

    Args:
        session_manager: Routes MCP requests to sessions
        relay: Relay reported by the health endpoint
        config: Relay configuration (MCP path, CORS origins)
    """
    config = config or session_manager.config

    app = web.Application(middlewares=[error_middleware])
    app[SESSION_MANAGER_KEY] = session_manager
    app[RELAY_KEY] = relay
    app[CONFIG_KEY] = config

    app.router.add_post(config.mcp_path, handle_post)
    app.router.add_get(config.mcp_path, handle_get)
    app.router.add_delete(config.mcp_path, handle_delete)
    app.router.add_route("OPTIONS", config.mcp_path, handle_options)
    app.router.add_get("/health", handle_health)

    if config.cors_origins:
        app.on_response_prepare.append(_cors_hook(config.cors_origins))

    return app
