"""Unit tests for the FastAPI application."""

import pytest
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from crm_intake import main
from crm_intake.core.store import INBOUND_MESSAGES, NOTES, MemoryRecordStore


@pytest.fixture
def client(store):
    """Test client with the record store swapped for the in-memory one."""
    main.app.dependency_overrides[main.get_record_store] = lambda: store
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


class TestEndpoints:
    """Tests for the HTTP endpoints."""

    def test_health(self, client):
        """Test health check."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_stats(self, client, make_message):
        """Test message counts."""
        make_message("Account: Acme Corp", text="First message body text.")
        make_message("Account: Globex", text="Second message body text.", processed=True)

        response = client.get("/stats")

        assert response.status_code == 200
        assert response.json() == {
            "total": 2,
            "processed": 1,
            "pending": 1,
            "organizations": 0,
            "deals": 0,
            "notes": 0,
        }

    def test_process_single_message(self, client, store, make_message):
        """Test synchronous processing of one message."""
        message_id = make_message("Account: Acme Corp", text="Please confirm the final scope today.")

        response = client.post(f"/process/{message_id}", json={"user_id": "user-1"})

        assert response.status_code == 200
        assert response.json() == {"message_id": message_id, "created": True}
        assert len(store.all(NOTES)) == 1

    def test_process_unknown_message(self, client):
        """Test 404 for an unknown message id."""
        response = client.post("/process/missing", json={"user_id": "user-1"})
        assert response.status_code == 404

    def test_process_without_acting_user(self, client, make_message):
        """Test 400 when no acting user can be resolved."""
        message_id = make_message("Account: Acme Corp", text="Please confirm the final scope today.")
        response = client.post(f"/process/{message_id}")
        assert response.status_code == 400

    def test_process_batch_in_background(self, client, store, make_message):
        """Test the batch endpoint processes pending messages."""
        message_id = make_message("Account: Acme Corp", text="Please confirm the final scope today.")

        response = client.post("/process", json={"user_id": "user-1"})

        assert response.status_code == 200
        assert response.json() == {"status": "processing_started"}
        assert store.get(INBOUND_MESSAGES, message_id)["processed"] is True

    def test_fetch_caps_days(self, client, monkeypatch):
        """Test the fetch window is capped at a year."""
        fetcher_cls = MagicMock()
        monkeypatch.setattr(main, "MailFetcher", fetcher_cls)

        response = client.post("/fetch", json={"days": 1000})

        assert response.json() == {"status": "fetch_started", "days": 365}
        fetcher_cls.return_value.fetch_and_store.assert_called_once_with(since_days=365)


def test_record_store_dependency_is_cached(monkeypatch):
    """Test the default dependency builds one store per process."""
    main.get_record_store.cache_clear()
    monkeypatch.setattr(main, "get_store", lambda: MemoryRecordStore())
    try:
        assert main.get_record_store() is main.get_record_store()
    finally:
        main.get_record_store.cache_clear()
