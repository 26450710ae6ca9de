"""ASGI handler — translates ASGI scope/messages to wren types.

The only component that touches raw HTTP-scope ASGI messages. Converts the
scope dict to a typed ``Request``, runs it through the ``Pipeline``, sends
the ``Response`` back through ASGI ``send()``, and only then runs the
handler's background tasks and tears down the request's dependencies.
"""

import logging

from wren._internal.asgi import Receive, Scope, Send
from wren.dependencies import RequestScope
from wren.http.request import Request
from wren.server.pipeline import Pipeline
from wren.server.sender import send_response

logger = logging.getLogger("wren.server")


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    pipeline: Pipeline,
) -> None:
    """Process a single HTTP request through the full pipeline.

    Background tasks run once the response is out. Cleanup runs after
    them, exactly once, even when the client disconnects or the task is
    cancelled mid-request. Task and cleanup failures are logged and never
    reach the client.
    """
    if scope["type"] != "http":
        return

    request = Request.from_asgi(scope, receive)
    dependency_scope = RequestScope()
    try:
        outcome = await pipeline.dispatch(request, dependency_scope)
        await send_response(outcome.response, send, head=request.method == "HEAD")
        if dependency_scope.background:
            await dependency_scope.background.run(timeout=pipeline.config.background_timeout)
    finally:
        errors = await dependency_scope.close()
        if errors:
            logger.warning(
                "%s %s: %d dependency cleanup(s) failed", request.method, request.path, len(errors)
            )
