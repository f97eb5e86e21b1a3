"""Helpers shared by the Vercel request handlers."""

import asyncio
import json
from http.server import BaseHTTPRequestHandler
from typing import Any, Awaitable
from urllib.parse import parse_qs, urlparse


def run_async(coro: Awaitable[Any]) -> Any:
    """Run a coroutine on the handler's event loop."""
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    if loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


def send_json(request: BaseHTTPRequestHandler, status: int, body: dict[str, Any]) -> None:
    request.send_response(status)
    request.send_header('Content-Type', 'application/json')
    request.end_headers()
    request.wfile.write(json.dumps(body, default=str).encode('utf-8'))


def read_json_body(request: BaseHTTPRequestHandler) -> Any:
    """Parse the request body as JSON. Raises ValueError on malformed input."""
    content_length = int(request.headers.get('Content-Length', 0) or 0)
    raw_body = request.rfile.read(content_length).decode('utf-8') if content_length > 0 else ""
    if not raw_body:
        return {}
    try:
        return json.loads(raw_body)
    except json.JSONDecodeError as e:
        raise ValueError(f"Malformed JSON body: {e.msg}") from e


def query_params(path: str) -> dict[str, str]:
    """First value of each query-string parameter."""
    return {key: values[0] for key, values in parse_qs(urlparse(path).query).items() if values}
