"""Shared pytest fixtures for notelink tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402


def _reset_singletons() -> None:
    import notelink.api.routes.chat as chat_module
    import notelink.api.routes.notes as notes_module

    chat_module._chat_client = None
    notes_module._base_storage = None
    notes_module._note_webhook = None
    notes_module._object_store = None


@pytest.fixture(autouse=True)
def _reset_route_singletons():
    """Reset module-level clients and stores between tests.

    Route modules build their collaborators lazily from the environment and
    cache them. Without this reset a client built under one test's env
    would leak into the next test.
    """
    _reset_singletons()
    yield
    _reset_singletons()


@pytest.fixture
def client_hash_secret(monkeypatch):
    """Set CLIENT_HASH_SECRET for routes that hash client addresses."""
    monkeypatch.setenv("CLIENT_HASH_SECRET", "test_secret_key_for_hmac_testing")
