"""Test utilities for warble functions::

    from warble.testing import TestClient
"""

from warble.testing.client import TestClient, TestResponse

__all__ = ["TestClient", "TestResponse"]
