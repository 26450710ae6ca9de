"""Handler return values to ``Response`` objects.

The pipeline has already picked the media type; ``render`` only has to
turn whatever the handler returned into a body for it::

    Response            -> passed through unchanged
    (value, status)     -> value rendered, status applied
    (value, status, h)  -> ... plus headers (mapping or pairs)
    None                -> 204 No Content
    bytes               -> application/octet-stream
    anything else       -> JSON for */json and */*+json, str() for text/*
"""

import json
from collections.abc import Mapping
from typing import Any

from wren.http.response import Response

OCTET_STREAM = "application/octet-stream"


def is_json(media_type: str) -> bool:
    essence = media_type.split(";", 1)[0].strip().lower()
    return essence == "application/json" or essence.endswith("+json")


def _with_charset(media_type: str) -> str:
    if media_type.startswith("text/") and "charset" not in media_type:
        return f"{media_type}; charset=utf-8"
    return media_type


def render(value: Any, media_type: str, *, status: int = 200) -> Response:
    """Render *value* as *media_type*."""
    headers: tuple[tuple[str, str], ...] = ()
    if isinstance(value, tuple) and len(value) in (2, 3) and isinstance(value[1], int):
        if len(value) == 3:
            extra = value[2]
            headers = tuple(extra.items()) if isinstance(extra, Mapping) else tuple(extra)
        value, status = value[0], value[1]

    if isinstance(value, Response):
        response = value
    elif value is None:
        response = Response(body=b"", status=204, content_type=media_type)
    elif isinstance(value, (bytes, bytearray)):
        response = Response(body=bytes(value), content_type=OCTET_STREAM)
    elif is_json(media_type):
        response = Response(body=json.dumps(value, default=str), content_type=media_type)
    elif isinstance(value, str) or media_type.startswith("text/"):
        response = Response(body=str(value), content_type=_with_charset(media_type))
    else:
        # Unknown non-text type with no codec: fall back to JSON
        response = Response(body=json.dumps(value, default=str))

    if status != 200:
        response = response.with_status(status)
    for name, header_value in headers:
        response = response.with_header(name, header_value)
    return response
