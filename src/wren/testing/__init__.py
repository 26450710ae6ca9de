"""Test utilities for wren applications::

    from wren.testing import TestClient
"""

from wren.testing.client import TestClient, WebSocketSession

__all__ = ["TestClient", "WebSocketSession"]
