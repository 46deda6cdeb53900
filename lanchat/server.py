"""Threaded TCP server that accepts chat clients and the command that starts it."""

from __future__ import annotations

import argparse
import contextlib
import logging
import socket
import sys
import threading
from typing import Sequence

import psutil

from lanchat.handlers import DEFAULT_TEMPLATE_PATH, TemplateCache, handle_client
from lanchat.models import MAX_CONNECTIONS, ChatState

logger = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
LISTEN_BACKLOG = 128
FD_LIMIT = 4096
BANNER_WIDTH = 44

OVERLOAD_RESPONSE = (
    b"HTTP/1.1 503 Service Unavailable\r\n"
    b"Content-Length: 0\r\nConnection: close\r\n\r\n"
)

_LOOPBACK_NAMES = frozenset({"lo", "lo0"})
_LAN_PREFIXES = ("en", "eth", "wlan", "wlp", "ens")


def get_local_ip() -> str:
    """Return the IPv4 address of the first LAN-looking interface, or ``"unknown"``."""
    try:
        interfaces = psutil.net_if_addrs()
    except (OSError, RuntimeError):
        return "unknown"
    for name, addresses in interfaces.items():
        if name in _LOOPBACK_NAMES or not name.startswith(_LAN_PREFIXES):
            continue
        for addr in addresses:
            if addr.family == socket.AF_INET:
                return addr.address
    return "unknown"


def format_banner(lan_ip: str, port: int = DEFAULT_PORT,
                  max_connections: int = MAX_CONNECTIONS) -> str:
    """Return the start-up banner shown on the console."""
    horizontal = "═" * BANNER_WIDTH

    def row(content: str) -> str:
        return f"║{content.ljust(BANNER_WIDTH)}║\n"

    return (
        f"\n╔{horizontal}╗\n"
        + row("  LAN Chat Server Started")
        + f"╠{horizontal}╣\n"
        + row(f"  Local:  http://localhost:{port}")
        + row(f"  LAN:    http://{lan_ip}:{port}")
        + row(f"  Port:   {port}")
        + row(f"  Max:    {max_connections} connections")
        + f"╚{horizontal}╝\n\n"
        + "Server running... (Ctrl+C to stop)\n\n"
    )


def _raise_fd_limit(target: int = FD_LIMIT) -> None:
    """Set the soft open-file limit to ``target``, bounded by the hard limit."""
    try:
        import resource
    except ImportError:
        return
    with contextlib.suppress(ValueError, OSError):
        soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
        new_soft = target if hard == resource.RLIM_INFINITY else min(target, hard)
        resource.setrlimit(resource.RLIMIT_NOFILE, (new_soft, hard))


class ChatServer:
    """Listens for connections and serves each one on its own thread."""

    poll_interval = 0.5

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        state: ChatState | None = None,
        templates: TemplateCache | None = None,
        max_connections: int = MAX_CONNECTIONS,
    ) -> None:
        self.state = state if state is not None else ChatState()
        self.templates = templates if templates is not None else TemplateCache()
        self.max_connections = max_connections
        self._active = 0
        self._active_lock = threading.Lock()
        self._closed = threading.Event()

        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._socket.bind((host, port))
            self._socket.listen(LISTEN_BACKLOG)
            self._socket.settimeout(self.poll_interval)
        except OSError:
            self._socket.close()
            raise

    @property
    def address(self) -> tuple[str, int]:
        """The host and port the server is bound to."""
        host, port = self._socket.getsockname()[:2]
        return host, port

    @property
    def active_connections(self) -> int:
        """The number of connections currently being served."""
        with self._active_lock:
            return self._active

    def __enter__(self) -> ChatServer:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def serve_forever(self) -> None:
        """Accept connections until :meth:`close` is called."""
        while not self._closed.is_set():
            try:
                client, _ = self._socket.accept()
            except socket.timeout:
                continue
            except OSError:
                if self._closed.is_set():
                    break
                continue

            with contextlib.suppress(OSError):
                client.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

            worker = threading.Thread(
                target=self.serve_connection, args=(client,), daemon=True
            )
            try:
                worker.start()
            except RuntimeError:
                client.close()

    def serve_connection(self, sock: socket.socket) -> None:
        """Serve one client, or refuse it with 503 when the server is full."""
        with self._active_lock:
            admitted = self._active < self.max_connections
            if admitted:
                self._active += 1

        if not admitted:
            with contextlib.suppress(OSError):
                sock.sendall(OVERLOAD_RESPONSE)
            sock.close()
            return

        try:
            handle_client(sock, self.state, self.templates)
        finally:
            with self._active_lock:
                self._active -= 1

    def close(self) -> None:
        """Stop accepting connections and release the listening socket."""
        self._closed.set()
        self._socket.close()


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="lanchat", description="LAN chat server")
    parser.add_argument("--host", default=DEFAULT_HOST, help="address to bind")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="port to listen on")
    parser.add_argument("--template", default=DEFAULT_TEMPLATE_PATH,
                        help="path of the page template")
    parser.add_argument("--max-connections", type=int, default=MAX_CONNECTIONS,
                        help="simultaneous connections before refusing with 503")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Start the chat server and serve until interrupted."""
    args = _parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")

    _raise_fd_limit()

    templates = TemplateCache(args.template)
    try:
        server = ChatServer(
            args.host, args.port, ChatState(), templates, args.max_connections
        )
    except OSError as exc:
        print(f"Bind error: {exc}", file=sys.stderr)
        return 1

    with server:
        templates.load()
        sys.stdout.write(format_banner(get_local_ip(), args.port, args.max_connections))
        sys.stdout.flush()
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            pass
    return 0