"""Render JSON responses as HTML for browsers.

Handlers always return JSON; this middleware decides per request whether the
client gets the JSON itself or a readable HTML page wrapping it.
"""
from __future__ import annotations
import html
import json
from typing import Awaitable, Callable

from fastapi import Request
from fastapi.responses import HTMLResponse, Response

FORMAT_PARAM = "format"


def wants_html(request: Request) -> bool:
    """``?format=`` wins; otherwise prefer HTML only when JSON is not accepted."""
    override = request.query_params.get(FORMAT_PARAM)
    if override:
        return override.lower() == "html"
    accept = request.headers.get("accept", "").lower()
    return "text/html" in accept and "application/json" not in accept


def render_html(payload: object, title: str = "Mileva API") -> str:
    pretty = html.escape(json.dumps(payload, indent=2, ensure_ascii=False))
    return (
        "<!DOCTYPE html>\n"
        f"<html><head><meta charset=\"utf-8\"><title>{html.escape(title)}</title></head>\n"
        f"<body><pre>{pretty}</pre></body></html>\n"
    )


def content_negotiation(
    prefers_html: Callable[[Request], bool] = wants_html,
) -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    """Build an ``http`` middleware using ``prefers_html`` as the predicate."""

    async def middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        response = await call_next(request)
        if not prefers_html(request):
            return response
        if not response.headers.get("content-type", "").startswith("application/json"):
            return response
        body = b"".join([chunk async for chunk in response.body_iterator])
        try:
            payload = json.loads(body)
        except ValueError:
            return Response(
                content=body,
                status_code=response.status_code,
                media_type=response.headers.get("content-type"),
            )
        return HTMLResponse(render_html(payload), status_code=response.status_code)

    return middleware
