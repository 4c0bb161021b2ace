"""
Root pytest configuration for the chat server.

Pins the environment the config layer reads before any test module imports
it, and auto-marks tests by filename. Fixtures live in chat_server/tests/conftest.py.
"""

import os

import pytest

os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("JWT_SECRET", "test-chat-secret")
os.environ.setdefault("OUTBOUND_WORKER_ENABLED", "false")


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_routes.py, test_hub.py → e2e (HTTP and Socket.IO boundary)
    - test_access_gate.py, test_models.py, test_worker.py → unit
    - Unmatched files → integration (they run against mongomock)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_routes.py", "test_hub.py"]
    unit_patterns = ["test_access_gate.py", "test_models.py", "test_worker.py"]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]
        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)
