"""HTTP response builders, chat API handlers and the request router."""

from __future__ import annotations

import contextlib
import logging
import re
import secrets
import socket
import time
from pathlib import Path

from lanchat.models import HEARTBEAT_TIMEOUT_SECONDS, ChatState, Message, User
from lanchat.utils import current_timestamp, escape_json, get_json_value

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_PATH = "templates/index.html"
SESSION_KEY_PLACEHOLDER = "__SESSION_KEY__"
FALLBACK_TEMPLATE = "<html><body>Error loading template</body></html>"

MAX_USERNAME_BYTES = 20
MAX_MESSAGE_BYTES = 1024
MAX_BODY_LENGTH = 65536
RECV_SIZE = 4095

_HTTP_200 = (
    "HTTP/1.1 200 OK\r\n"
    "Connection: close\r\n"
    "Access-Control-Allow-Origin: *\r\n"
)

_HTTP_400 = (
    "HTTP/1.1 400 Bad Request\r\n"
    "Content-Type: application/json; charset=utf-8\r\n"
    "Connection: close\r\n"
    "Access-Control-Allow-Origin: *\r\n"
)

NOT_FOUND_RESPONSE = (
    b"HTTP/1.1 404 Not Found\r\nContent-Length: 0\r\nConnection: close\r\n\r\n"
)

_LEADING_INT = re.compile(rb"\s*([+-]?\d+)")
_QUERY_TERMINATORS = re.compile(r"[ &\r\n]")


def generate_session_key() -> str:
    """Return a random 128-bit key as 32 lower-case hex digits."""
    return secrets.token_hex(16)


class TemplateCache:
    """Loads the page template once and keeps it for later requests."""

    def __init__(self, path: str | Path = DEFAULT_TEMPLATE_PATH) -> None:
        self.path = Path(path)
        self._content: str | None = None

    def load(self) -> str:
        """Return the template, reading it and injecting a session key on first use."""
        if self._content is None:
            try:
                text = self.path.read_text(encoding="utf-8")
            except OSError:
                logger.error("Could not open %s", self.path)
                self._content = FALLBACK_TEMPLATE
            else:
                self._content = text.replace(
                    SESSION_KEY_PLACEHOLDER, generate_session_key(), 1
                )
                logger.info("Session encryption key generated")
        return self._content


def _encode(text: str) -> bytes:
    return text.encode("utf-8", errors="surrogateescape")


def build_http_response(body: str, content_type: str = "text/html") -> bytes:
    """Build a 200 response carrying ``body`` with the given content type."""
    payload = _encode(body)
    head = (
        f"{_HTTP_200}Content-Type: {content_type}; charset=utf-8\r\n"
        f"Content-Length: {len(payload)}\r\n\r\n"
    )
    return _encode(head) + payload


def build_error_response(message: str) -> bytes:
    """Build a 400 response with a ``success: false`` JSON body."""
    payload = _encode(
        '{"success":false,"message":"' + escape_json(message) + '"}'
    )
    head = f"{_HTTP_400}Content-Length: {len(payload)}\r\n\r\n"
    return _encode(head) + payload


def build_json_response(json_text: str) -> bytes:
    """Build a 200 response carrying already-serialised JSON."""
    return build_http_response(json_text, "application/json")


def handle_join(state: ChatState, body: str) -> bytes:
    """Register a new user named by the ``username`` field of ``body``."""
    with state.lock:
        username = get_json_value(body, "username")
        if not username or len(_encode(username)) > MAX_USERNAME_BYTES:
            return build_error_response("Invalid username")

        if any(ord(c) < 0x20 or ord(c) == 0x7F for c in username):
            return build_error_response(
                "Username contains invalid control characters"
            )

        if any(user.username == username for user in state.users.values()):
            return build_error_response("Username already taken")

        user_id = state.next_user_id()
        state.users[user_id] = User(
            id=user_id,
            username=username,
            joined_at=current_timestamp(),
            last_seen=time.time(),
        )
    return build_json_response('{"success":true,"userId":"' + user_id + '"}')


def handle_message(state: ChatState, body: str) -> bytes:
    """Append the ``text`` of ``body`` to the history on behalf of ``userId``."""
    with state.lock:
        user_id = get_json_value(body, "userId")
        text = get_json_value(body, "text")

        user = state.users.get(user_id)
        if user is None:
            return build_error_response("User not found")

        if not text or len(_encode(text)) > MAX_MESSAGE_BYTES:
            return build_error_response("Invalid message")

        state.add_message(Message(user.username, text, current_timestamp()))
    return build_json_response('{"success":true}')


def handle_status(state: ChatState, user_id: str) -> bytes:
    """Refresh the caller's heartbeat, prune stale users and report the room."""
    with state.lock:
        now = time.time()
        caller = state.users.get(user_id)
        if caller is not None:
            caller.last_seen = now

        stale = [
            uid
            for uid, user in state.users.items()
            if now - user.last_seen > HEARTBEAT_TIMEOUT_SECONDS
        ]
        for uid in stale:
            del state.users[uid]

        usernames = [state.users[uid].username for uid in sorted(state.users)]
        messages = list(state.messages)

    users_json = ",".join(f'"{escape_json(name)}"' for name in usernames)
    messages_json = ",".join(
        '{"username":"' + escape_json(m.username)
        + '","text":"' + escape_json(m.text)
        + '","timestamp":"' + escape_json(m.timestamp) + '"}'
        for m in messages
    )
    json_text = (
        f'{{"userCount":{len(usernames)},"users":[{users_json}],'
        f'"messages":[{messages_json}]}}'
    )
    return build_json_response(json_text)


def handle_leave(state: ChatState, user_id: str) -> bytes:
    """Remove a user; unknown identifiers are ignored."""
    with state.lock:
        state.users.pop(user_id, None)
    return build_json_response('{"success":true}')


def extract_query_param(request: str, param: str) -> str:
    """Return the value following ``param=`` in a raw request, or ``""``."""
    key = f"{param}="
    pos = request.find(key)
    if pos < 0:
        return ""
    start = pos + len(key)
    match = _QUERY_TERMINATORS.search(request, start)
    end = match.start() if match else len(request)
    return request[start:end]


def extract_body(request: str) -> str:
    """Return everything after the blank line ending the headers, or ``""``."""
    pos = request.find("\r\n\r\n")
    if pos < 0 or pos + 4 >= len(request):
        return ""
    return request[pos + 4:]


def route_request(state: ChatState, request: str, templates: TemplateCache) -> bytes:
    """Dispatch a raw request to the matching handler and return the response."""
    if request.startswith("GET "):
        if request.startswith("/api/status", 4):
            return handle_status(state, extract_query_param(request, "userId"))
        return build_http_response(templates.load())

    if request.startswith("POST "):
        body = extract_body(request)
        if request.startswith("/api/join", 5):
            return handle_join(state, body)
        if request.startswith("/api/message", 5):
            return handle_message(state, body)
        if request.startswith("/api/leave", 5):
            return handle_leave(state, extract_query_param(request, "userId"))

    return NOT_FOUND_RESPONSE


def _content_length(request: bytes, headers_end: int) -> int:
    pos = request.find(b"Content-Length: ")
    if pos < 0:
        pos = request.find(b"content-length: ")
    if pos < 0 or pos >= headers_end:
        return 0
    match = _LEADING_INT.match(request, pos + 16)
    return int(match.group(1)) if match else 0


def read_request(sock: socket.socket) -> bytes | None:
    """Read one request from ``sock``; ``None`` if nothing usable arrived."""
    try:
        request = sock.recv(RECV_SIZE)
    except OSError:
        return None
    if not request:
        return None

    headers_end = request.find(b"\r\n\r\n")
    if headers_end < 0:
        return None

    content_length = _content_length(request, headers_end)
    if 0 < content_length < MAX_BODY_LENGTH:
        body_start = headers_end + 4
        have = max(len(request) - body_start, 0)
        chunks = [request]
        while have < content_length:
            try:
                more = sock.recv(RECV_SIZE)
            except OSError:
                break
            if not more:
                break
            chunks.append(more)
            have += len(more)
        request = b"".join(chunks)
    return request


def handle_client(sock: socket.socket, state: ChatState, templates: TemplateCache) -> None:
    """Serve a single request on ``sock`` and close it."""
    try:
        raw = read_request(sock)
        if raw is None:
            return
        request = raw.decode("utf-8", errors="surrogateescape")
        response = route_request(state, request, templates)
        with contextlib.suppress(OSError):
            sock.sendall(response)
    finally:
        sock.close()