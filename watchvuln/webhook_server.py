"""A small server that receives and prints webhook messages."""

from __future__ import annotations

import json
import os
import sys
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional, Union
from urllib.parse import urlsplit

from watchvuln.messages import (
    RAW_MESSAGE_TYPE_INITIAL,
    RAW_MESSAGE_TYPE_TEXT,
    RAW_MESSAGE_TYPE_VULN_INFO,
    InitialMessage,
    TextMessage,
)
from watchvuln.models import Provider, VulnInfo

WebhookContent = Union[InitialMessage, TextMessage, VulnInfo]


def _providers(items: Any) -> list[Provider]:
    return [
        Provider(name=p.get("name") or "", display_name=p.get("display_name") or "", link=p.get("link") or "")
        for p in items or []
    ]


def _parse_content(kind: str, content: dict[str, Any]) -> WebhookContent:
    if kind == RAW_MESSAGE_TYPE_INITIAL:
        return InitialMessage(
            version=content.get("version") or "",
            vuln_count=int(content.get("vuln_count") or 0),
            interval=content.get("interval") or "",
            provider=_providers(content.get("provider")),
            failed_provider=_providers(content.get("failed_provider")),
        )
    if kind == RAW_MESSAGE_TYPE_TEXT:
        return TextMessage(message=content.get("message") or "")
    return VulnInfo.from_dict(content)


_LABELS = {
    RAW_MESSAGE_TYPE_INITIAL: "recv initial data:",
    RAW_MESSAGE_TYPE_TEXT: "recv text data:",
    RAW_MESSAGE_TYPE_VULN_INFO: "recv vuln data:",
}


def handle_webhook_data(data: bytes) -> Optional[WebhookContent]:
    """Decode and print one webhook body; returns None for unknown message types."""
    envelope = json.loads(data)
    if not isinstance(envelope, dict):
        raise ValueError("webhook data is not a JSON object")
    kind = envelope.get("type") or ""
    print()
    if kind not in _LABELS:
        print("recv unknown data:")
        print(data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data)
        return None
    print(_LABELS[kind])
    content = envelope.get("content")
    if content is None:
        content = {}
    if not isinstance(content, dict):
        raise ValueError(f"invalid content for {kind}")
    try:
        message = _parse_content(kind, content)
    except (AttributeError, TypeError) as exc:
        raise ValueError(f"invalid content for {kind}: {exc}") from exc
    print(f"msg: {json.dumps(content, ensure_ascii=False)}")
    if kind == RAW_MESSAGE_TYPE_INITIAL:
        print(f"unmarshal: {message}")
    return message


class _WebhookHandler(BaseHTTPRequestHandler):
    def _handle(self) -> None:
        if urlsplit(self.path).path != "/webhook":
            self.send_error(404)
            return
        length = int(self.headers.get("Content-Length") or 0)
        data = self.rfile.read(length)
        try:
            handle_webhook_data(data)
        except ValueError as exc:
            print(exc)
            body = str(exc).encode("utf-8")
            self.send_response(500)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
            return
        self.send_response(200)
        self.send_header("Content-Length", "0")
        self.end_headers()

    do_POST = _handle
    do_PUT = _handle
    do_GET = _handle

    def log_message(self, format: str, *args: Any) -> None:
        pass


def make_server(addr: str) -> HTTPServer:
    """Create a server bound to ``host:port`` that serves ``/webhook``."""
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid listen address {addr!r}")
    return HTTPServer((host, int(port)), _WebhookHandler)


def main(argv: Optional[list[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    prog = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "webhook-server"
    if not args:
        print(f"Usage: {prog} listen-addr\nex: {prog} 127.0.0.1:1111")
        return 0
    addr = args[0]
    print(f"webhook server url: http://{addr}/webhook")
    server = make_server(addr)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
    return 0