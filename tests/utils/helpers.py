"""Test helper functions."""

import json
from io import BytesIO
from typing import Any, Optional
from unittest.mock import Mock


class MockSocket:
    """Socket stand-in that feeds a raw HTTP request to a BaseHTTPRequestHandler."""

    def __init__(self, raw_request: bytes):
        self.raw_request = raw_request

    def makefile(self, *args, **kwargs):
        return BytesIO(self.raw_request)

    def sendall(self, data):
        pass

    def close(self):
        pass


def make_handler(handler_class, method: str, path: str, body: Optional[Any] = None):
    """Build a handler ready for a do_* call with the given path and JSON body.

    Construction serves a bare request (no query, no body) which every
    endpoint rejects before touching a store. The handler is then reset with
    the real request, a BytesIO wfile and mocked response methods.
    """
    bare_path = path.split("?", 1)[0]
    h = handler_class(MockSocket(f"{method} {bare_path} HTTP/1.1\r\n\r\n".encode('utf-8')), ("127.0.0.1", 8000), None)

    payload = b""
    if body is not None:
        payload = (body if isinstance(body, str) else json.dumps(body)).encode('utf-8')

    h.path = path
    h.headers = {"Content-Type": "application/json", "Content-Length": str(len(payload))}
    h.rfile = BytesIO(payload)
    h.wfile = BytesIO()
    h.send_response = Mock()
    h.send_header = Mock()
    h.end_headers = Mock()
    return h


def response_status(h) -> int:
    return h.send_response.call_args[0][0]


def response_body(h) -> Any:
    h.wfile.seek(0)
    return json.loads(h.wfile.read().decode('utf-8'))
