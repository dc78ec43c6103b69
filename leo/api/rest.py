"""Gateway REST API.

Endpoints:
  POST   /chat               - Send message, get response
  DELETE /chat/{session_id}  - Forget a conversation
  GET    /status             - Provider, model, tools and skills
  GET    /health             - Liveness check
"""

from __future__ import annotations

import json
import logging
from typing import Any
from uuid import uuid4

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

import leo
from leo.adapters.sessions import SessionStore
from leo.agent.context import Context
from leo.agent.loop import AgentLoop
from leo.errors import AuthError, ConfigError, LeoError, LlmError

logger = logging.getLogger(__name__)


def _status_for(error: LeoError) -> int:
    if isinstance(error, AuthError):
        return 401
    if isinstance(error, LlmError):
        return 502
    if isinstance(error, ConfigError):
        return 500
    return 500


def create_app(
    loop: AgentLoop,
    ctx: Context,
    sessions: SessionStore | None = None,
    lifespan: Any | None = None,
) -> Starlette:
    """Create the Starlette ASGI app with all routes."""
    if sessions is None:
        sessions = SessionStore(history_window=ctx.settings.history_window)

    async def chat(request: Request) -> JSONResponse:
        """POST /chat - Send a message, get a response."""
        try:
            body = await request.json()
        except json.JSONDecodeError:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        message = body.get("message")
        if not message or not isinstance(message, str):
            return JSONResponse({"error": "Missing required field: message"}, status_code=400)

        session_id = body.get("session_id") or str(uuid4())

        async with sessions.lock(session_id):
            try:
                response = await loop.run(sessions.history(session_id), message, ctx)
            except LeoError as e:
                logger.error("Chat error (%s): %s", session_id, e)
                return JSONResponse({"error": str(e)}, status_code=_status_for(e))
            sessions.record(session_id, message, response.content)

        return JSONResponse({
            "response": response.content,
            "session_id": session_id,
            "iterations": response.iterations,
            "tools_used": [r.tool_name for r in response.tool_results],
            "usage": response.usage.model_dump(),
        })

    async def end_chat(request: Request) -> JSONResponse:
        """DELETE /chat/{session_id} - Forget a conversation."""
        session_id = request.path_params["session_id"]
        async with sessions.lock(session_id):
            existed = sessions.clear(session_id)
        if not existed:
            return JSONResponse({"error": f"Unknown session: {session_id}"}, status_code=404)
        return JSONResponse({"status": "ended", "session_id": session_id})

    async def status(request: Request) -> JSONResponse:
        """GET /status - Configuration summary."""
        return JSONResponse({
            "version": leo.__version__,
            "provider": ctx.settings.provider,
            "model": loop.client.default_model(),
            "workspace": str(ctx.workspace),
            "max_iterations": loop.max_iterations,
            "tools": ctx.registry.names(),
            "skills": ctx.skills.list(),
            "sessions": len(sessions),
        })

    async def health(request: Request) -> JSONResponse:
        """GET /health - Health check."""
        return JSONResponse({"status": "healthy"})

    routes = [
        Route("/chat", chat, methods=["POST"]),
        Route("/chat/{session_id}", end_chat, methods=["DELETE"]),
        Route("/status", status),
        Route("/health", health),
    ]

    kwargs: dict[str, Any] = {"routes": routes}
    if lifespan is not None:
        kwargs["lifespan"] = lifespan
    return Starlette(**kwargs)
