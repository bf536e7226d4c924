#!/usr/bin/env python3
"""Trivial HTTP responder used as the process whose termination is measured.

Usage: ``python -m killtree_bench.subject <port>``. The process prints a
readiness line once the listener is bound and then serves until killed.
"""

from __future__ import annotations

import http.server
import sys
from typing import Optional

READY_PREFIX = "Server is running on port"
BODY = b"Hello, World!"


class _HelloHandler(http.server.BaseHTTPRequestHandler):
    def do_GET(self) -> None:  # noqa: N802 (BaseHTTPRequestHandler API)
        self.send_response(200)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(BODY)))
        self.end_headers()
        self.wfile.write(BODY)

    do_POST = do_GET
    do_PUT = do_GET
    do_DELETE = do_GET

    def log_message(self, format: str, *args) -> None:  # noqa: A003 (matches base signature)
        return


def ready_line(port: int) -> str:
    return f"{READY_PREFIX} {port}"


def serve(port: int) -> None:
    print(f"Server is trying to listen on port {port}", flush=True)
    server = http.server.HTTPServer(("127.0.0.1", port), _HelloHandler)
    print(ready_line(port), flush=True)
    with server:
        server.serve_forever()


def main(argv: Optional[list[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 1:
        print("usage: subject <port>", file=sys.stderr)
        return 2
    try:
        port = int(args[0])
    except ValueError:
        print(f"invalid port: {args[0]}", file=sys.stderr)
        return 2
    try:
        serve(port)
    except OSError as exc:
        print(f"failed to listen on port {port}: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
