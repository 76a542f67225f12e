"""
This module contains pytest fixtures and configuration for testing.
"""
import json
import os
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

# Add the project's root directory to the system path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

# main.py initializes Firebase on import; give it fake credentials and keep it offline
os.environ.setdefault("FIREBASE_CREDENTIALS_JSON_CONTENT", json.dumps({"type": "service_account"}))
patch('firebase_admin.credentials.Certificate').start()
patch('firebase_admin.initialize_app').start()

# Import the main app
from main import app
from clinic_api.auth.dependencies import get_clinic_auth


@pytest.fixture(autouse=True)
def no_local_bypass(monkeypatch):
    """Run every test with real authentication checks."""
    monkeypatch.delenv("ENV", raising=False)


@pytest.fixture(autouse=True)
def no_redis():
    """Disable caching; reports are computed on every call."""
    with patch('clinic_api.common.cache.get_redis_client', return_value=None):
        yield


@pytest.fixture
def test_app():
    """
    Create a FastAPI test application.
    """
    return app


@pytest.fixture
def client(test_app):
    """
    Create a test client for the FastAPI application.
    """
    return TestClient(test_app)


@pytest.fixture
def clinic_client(test_app):
    """
    Test client authenticated as the owner of clinic123.
    """
    test_app.dependency_overrides[get_clinic_auth] = lambda: ("user123", {"id": "clinic123", "role": "owner"})
    yield TestClient(test_app)
    test_app.dependency_overrides.clear()


@pytest.fixture
def mock_firestore():
    """
    Create a mock for the Firestore client.
    """
    with patch('firebase_admin.firestore.client') as mock:
        # Configure the mock to provide the necessary methods and return values
        firestore_mock = MagicMock()
        mock.return_value = firestore_mock
        yield firestore_mock


def make_doc(doc_id, data, exists=True):
    """A Firestore document snapshot stand-in."""
    doc = MagicMock()
    doc.id = doc_id
    doc.exists = exists
    doc.to_dict.return_value = data
    return doc
