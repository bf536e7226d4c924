import socket
import sys

import pytest

from killtree_bench.domain.value_objects import Strategy

POSIX_ONLY = pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX signals required")


def python_killer(name: str, code: str) -> Strategy:
    return Strategy(name=name, executable=sys.executable, args=("-c", code))


NOOP_KILLER = python_killer("noop", "pass")
SIGTERM_KILLER = python_killer(
    "sigterm",
    "import os, signal, sys; os.kill(int(sys.argv[1]), signal.SIGTERM)",
)
FAILING_KILLER = python_killer(
    "failing",
    "import os, signal, sys; os.kill(int(sys.argv[1]), signal.SIGTERM); sys.exit(3)",
)
SLOW_KILLER = python_killer("slow", "import time; time.sleep(10)")
MISSING_KILLER = Strategy(name="missing", executable="/nonexistent/kill_tree_missing")


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture()
def base_port() -> int:
    port = free_port()
    # leave room for a handful of consecutive trial ports
    return min(port, 65535 - 16)
