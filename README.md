# lanchat

A lightweight chat server for a local network. Browsers load a page from the
server and then poll a small JSON API to join, send messages and see who is
online.

## Installing

```
pip install .
```

## Running

```
lanchat
```

By default the server listens on port 8080 on all interfaces (`0.0.0.0`)
and reads its page template from `templates/index.html`, relative to the
current directory. At startup it prints a banner with the local URL and the
LAN address it detected (the IPv4 address of the first interface whose name
starts with `en`, `eth`, `wlan`, `wlp` or `ens`, or `unknown`). Stop it with
Ctrl+C. If the address cannot be bound, it prints `Bind error: ...` and exits
with status 1.

Options:

| Option              | Default               | Meaning                                          |
|---------------------|-----------------------|--------------------------------------------------|
| `--host`            | `0.0.0.0`             | address to bind                                  |
| `--port`            | `8080`                | port to listen on                                |
| `--template`        | `templates/index.html`| path of the page template                        |
| `--max-connections` | `200`                 | simultaneous connections before refusing with 503 |

On startup the server also tries to raise the soft open-file limit to 4096
(bounded by the hard limit) where the platform allows it.

### The page template

The template is read once, as UTF-8, on first use. The first
`__SESSION_KEY__` placeholder in it is replaced with a random 128-bit key
written as 32 lower-case hex digits, so the key changes each time the server
starts. If the file cannot be read, a short error page is served instead.

## What the package does not include

The package provides the server and its JSON API only. It ships no browser
page: you must supply your own `templates/index.html` (or point `--template`
at one) that talks to the API below. Nothing is stored on disk; users and
messages live in memory and are lost when the server stops.

## HTTP API

All API responses are JSON. Failed requests return `400 Bad Request` with
`{"success":false,"message":"..."}`.

| Method | Path                        | Body / query                      | Result                               |
|--------|-----------------------------|-----------------------------------|--------------------------------------|
| POST   | `/api/join`                 | `{"username":"alice"}`            | `{"success":true,"userId":"user_1"}` |
| POST   | `/api/message`              | `{"userId":"user_1","text":"hi"}` | `{"success":true}`                   |
| GET    | `/api/status?userId=user_1` |                                   | `userCount`, `users`, `messages`     |
| POST   | `/api/leave?userId=user_1`  |                                   | `{"success":true}`                   |

Rules the server enforces:

- Usernames are 1 to 20 bytes when encoded as UTF-8, must not contain control
  characters, and must not already be in use.
- Messages are 1 to 1024 bytes when encoded as UTF-8, and only joined users
  may send them.
- The 200 most recent messages are kept; older ones are dropped.
- Each status poll refreshes the caller's heartbeat. Any user not heard from
  for more than 10 seconds is dropped when a status poll is handled.
- At most 200 connections (or `--max-connections`) are handled at once.
  Connections beyond that get `503 Service Unavailable`.
- Leaving with an unknown user id still succeeds.

Request bodies are read with a lenient scan rather than a full JSON parser:
a field's value is the text between the first pair of double quotes after the
key's colon, so escaped quotes inside a value are not understood.

Any other path returns the chat page for `GET` and `404 Not Found` for `POST`;
other methods also get `404 Not Found`.

## Using it from Python

The parts that make up the server can be used on their own. Handlers take a
`ChatState` and return the complete HTTP response as bytes:

```python
from lanchat.models import ChatState
from lanchat.handlers import handle_join, handle_status

state = ChatState()
print(handle_join(state, '{"username":"alice"}'))
print(handle_status(state, "user_1"))
```

- `lanchat.models` holds `User`, `Message` and `ChatState` (users, a bounded
  message history and the lock guarding them).
- `lanchat.utils` holds `escape_json`, `current_timestamp` and
  `get_json_value`.
- `lanchat.handlers` holds the response builders, the API handlers,
  `route_request`, `read_request`, `handle_client` and `TemplateCache`.
- `lanchat.server.ChatServer` puts a `ChatState` and a `TemplateCache` behind
  a listening socket and serves each connection on its own thread.
  `serve_forever()` accepts connections until `close()` is called; it can also
  be used as a context manager.

## Tests

```
pip install .[test]
pytest
```