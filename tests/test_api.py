import inspect
import pytest
import httpx
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, patch

import main
from main import app, limiter

client = TestClient(app)

CSV_BODY = (
    "type, client, tx, amount\n"
    "deposit, 1, 1, 5.0\n"
    "deposit, 1, 2, 3.0\n"
    "withdrawal, 1, 3, 2.0\n"
    "dispute, 1, 1,\n"
    "dispute, 9, 99,\n"
    "deposit, 2, oops, 1\n"
)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Reset rate limit counters before each test."""
    limiter.reset()


class TestProcessCsv:
    """Test the CSV batch endpoint."""

    def test_process_csv(self):
        response = client.post(
            "/ledger/process",
            content=CSV_BODY,
            headers={"Content-Type": "text/csv"}
        )

        assert response.status_code == 200
        data = response.json()

        assert data["accounts"] == [
            {"client": 1, "available": "1.0000", "held": "5.0000", "total": "6.0000", "locked": False},
            {"client": 9, "available": "0.0000", "held": "0.0000", "total": "0.0000", "locked": False},
        ]
        assert data["stats"]["processed"] == 5
        assert data["stats"]["applied"] == 4
        assert data["stats"]["rejections"] == {"UNKNOWN_TRANSACTION": 1}
        assert data["dropped"] == 1

    def test_requests_are_independent(self):
        """Test that each request starts from an empty ledger."""
        body = "deposit,1,1,1.0\n"

        client.post("/ledger/process", content=body)
        response = client.post("/ledger/process", content=body)

        assert response.json()["stats"]["applied"] == 1
        assert response.json()["accounts"][0]["available"] == "1.0000"

    def test_empty_body(self):
        response = client.post("/ledger/process", content="")

        assert response.status_code == 200
        assert response.json()["accounts"] == []

    def test_non_utf8_body(self):
        response = client.post("/ledger/process", content=b"\xff\xfe\x00")

        assert response.status_code == 400
        assert response.json()["error_code"] == "HTTP_400"

    def test_body_too_large(self):
        with patch("main.settings.max_request_size", 10):
            response = client.post("/ledger/process", content=CSV_BODY)

        assert response.status_code == 413

    def test_oversized_amount_dropped(self):
        """Test that an amount too large to represent drops only its row."""
        response = client.post("/ledger/process", content="deposit,1,1,5.0\ndeposit,1,2,1e30\ndeposit,1,3,2.0\n")

        assert response.status_code == 200
        data = response.json()
        assert data["dropped"] == 1
        assert data["accounts"][0]["available"] == "7.0000"

    def test_batch_applied_off_event_loop(self):
        """Test that the CSV batch is handed to the threadpool."""
        offload = AsyncMock(side_effect=lambda func, *args: func(*args))

        with patch("main.run_in_threadpool", offload):
            response = client.post("/ledger/process", content="deposit,1,1,1.0\n")

        assert response.status_code == 200
        offload.assert_awaited_once()


class TestProcessBatch:
    """Test the JSON batch endpoint."""

    def test_process_batch(self):
        response = client.post("/ledger/batch", json={"transactions": [
            {"type": "deposit", "client": 1, "tx": 1, "amount": "5.0"},
            {"type": "dispute", "client": 1, "tx": 1},
            {"type": "chargeback", "client": 1, "tx": 1},
            {"type": "deposit", "client": 1, "tx": 4, "amount": "1.0"},
        ]})

        assert response.status_code == 200
        data = response.json()

        assert data["accounts"] == [
            {"client": 1, "available": "0.0000", "held": "0.0000", "total": "0.0000", "locked": True},
        ]
        assert data["stats"]["rejections"] == {"ACCOUNT_LOCKED": 1}

    def test_malformed_record(self):
        response = client.post("/ledger/batch", json={"transactions": [
            {"type": "transfer", "client": 1, "tx": 1, "amount": "5.0"},
        ]})

        assert response.status_code == 422

    def test_missing_transactions(self):
        response = client.post("/ledger/batch", json={})

        assert response.status_code == 422

    def test_oversized_amount_rejected(self):
        response = client.post("/ledger/batch", json={"transactions": [
            {"type": "deposit", "client": 1, "tx": 1, "amount": "1e30"},
        ]})

        assert response.status_code == 422

    def test_batch_handler_runs_in_threadpool(self):
        """Test that the JSON batch endpoint is a plain function, so it runs off the event loop."""
        assert not inspect.iscoroutinefunction(main.process_batch)


class TestHealthAndUtility:
    """Test health check and utility endpoints."""

    def test_health_check(self):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()

        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert "version" in data

    def test_root_endpoint(self):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()

        assert "message" in data
        assert "docs" in data


class TestRateLimiting:
    def test_rate_limit_exceeded(self):
        with patch("main.settings.rate_limit_per_minute", 2):
            responses = [client.post("/ledger/process", content="") for _ in range(3)]

        assert [r.status_code for r in responses] == [200, 200, 429]


class TestAsyncClient:
    @pytest.mark.asyncio
    async def test_process_csv_async(self):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.post("/ledger/process", content="deposit,3,1,2.5\nwithdrawal,3,2,1\n")

        assert response.status_code == 200
        assert response.json()["accounts"][0]["available"] == "1.5000"
