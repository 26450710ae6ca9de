"""ASGI response sending — translates wren Responses to ASGI messages."""

from wren._internal.asgi import Send
from wren.http.response import Response


def body_allowed(status: int) -> bool:
    """Whether an HTTP status code permits a response body."""
    # RFC: 1xx, 204, and 304 responses do not include a message body.
    return not (100 <= status < 200 or status in {204, 304})


def encode_headers(response: Response, content_length: int | None) -> list[tuple[bytes, bytes]]:
    raw_headers: list[tuple[bytes, bytes]] = []
    if body_allowed(response.status):
        raw_headers.append((b"content-type", response.content_type.encode("latin-1")))
    raw_headers.extend(
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in response.headers
    )
    if content_length is not None:
        raw_headers.append((b"content-length", str(content_length).encode("latin-1")))
    return raw_headers


async def send_response(response: Response, send: Send, *, head: bool = False) -> None:
    """Translate a wren Response into ASGI send() calls.

    For ``HEAD`` requests the headers describe the body a ``GET`` would
    have produced, but no body bytes are sent.
    """
    body = response.body_bytes if body_allowed(response.status) else b""
    length = len(body) if body_allowed(response.status) else None

    await send(
        {
            "type": "http.response.start",
            "status": response.status,
            "headers": encode_headers(response, length),
        }
    )
    await send(
        {
            "type": "http.response.body",
            "body": b"" if head else body,
        }
    )
