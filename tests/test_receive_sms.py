"""
Tests for inbound SMS ingestion, retrieval and owner stats.

Tests cover:
- Timestamp resolution (absolute vs epoch millis)
- Validation and device checks
- Background counter update and MESSAGE_RECEIVED webhook
- Received SMS listing with device projection
- Owner stats
"""

import pytest

from conftest import OWNER_HEADERS, FakeNotifier, FakeQuotaGuard, fetch_all, fetch_device, register_device
from smsrelay.models import SMS, SMSType


def receive_url(device_id: str) -> str:
    return f"/api/v1/gateway/devices/{device_id}/receive-sms"


def received_url(device_id: str) -> str:
    return f"/api/v1/gateway/devices/{device_id}/get-received-sms"


class TestReceiveSMS:
    """Test recording inbound SMS."""

    def test_received_at_from_millis(self, client, device):
        """Test receivedAt is derived from epoch millis when the absolute value is missing."""
        response = client.post(
            receive_url(device["id"]),
            json={"sender": "+15551234", "message": "hi", "receivedAtInMillis": 1736935200000},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["type"] == "RECEIVED"
        assert data["sender"] == "+15551234"
        assert data["message"] == "hi"
        assert data["received_at"] == "2025-01-15T10:00:00.000Z"
        assert data["sms_batch_id"] is None

        units = fetch_all(SMS, type=SMSType.RECEIVED)
        assert len(units) == 1
        assert units[0].received_at == "2025-01-15T10:00:00.000Z"

    def test_absolute_timestamp_wins(self, client, device):
        response = client.post(
            receive_url(device["id"]),
            json={
                "sender": "+15551234",
                "message": "hi",
                "receivedAt": "2025-02-01T08:30:00+02:00",
                "receivedAtInMillis": 1736935200000,
            },
        )

        assert response.status_code == 200
        assert response.json()["received_at"] == "2025-02-01T06:30:00.000Z"

    @pytest.mark.parametrize(
        "body",
        [
            {"sender": "+15551234", "message": "hi"},
            {"message": "hi", "receivedAtInMillis": 1736935200000},
            {"sender": "+15551234", "receivedAtInMillis": 1736935200000},
            {"sender": "", "message": "hi", "receivedAtInMillis": 1736935200000},
            {"sender": 15551234, "message": "hi", "receivedAtInMillis": 1736935200000},
            {"sender": "+15551234", "message": ["hi"], "receivedAtInMillis": 1736935200000},
            {"sender": "+15551234", "message": "hi", "receivedAtInMillis": 10**18},
            {"sender": "+15551234", "message": "hi", "receivedAtInMillis": -(10**18)},
            {"sender": "+15551234", "message": "hi", "receivedAtInMillis": "yesterday"},
            {"sender": "+15551234", "message": "hi", "receivedAtInMillis": True},
            {"sender": "+15551234", "message": "hi", "receivedAt": "not a date"},
        ],
    )
    def test_invalid_inbound_message(self, client, device, body):
        response = client.post(receive_url(device["id"]), json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid received SMS data"
        assert fetch_all(SMS) == []

    def test_missing_device(self, client):
        response = client.post(
            receive_url("missing"),
            json={"sender": "+1", "message": "hi", "receivedAtInMillis": 1},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Device does not exist"

    def test_disabled_device_still_receives(self, client, device):
        """Test inbound messages are accepted from disabled devices."""
        client.patch(f"/api/v1/gateway/devices/{device['id']}", json={"enabled": False})

        response = client.post(
            receive_url(device["id"]),
            json={"sender": "+1", "message": "hi", "receivedAtInMillis": 1736935200000},
        )

        assert response.status_code == 200

    def test_quota_checked_with_one_unit(self, client, device, quota_guard):
        client.post(receive_url(device["id"]), json={"sender": "+1", "message": "hi", "receivedAtInMillis": 1})

        assert quota_guard.calls == [("owner-1", "receive_sms", 1)]

    @pytest.mark.parametrize("quota_guard", [FakeQuotaGuard(refuse=True)])
    def test_quota_refused_before_validation(self, client, device, quota_guard):
        response = client.post(receive_url(device["id"]), json={})

        assert response.status_code == 429

    @pytest.mark.parametrize("quota_guard", [FakeQuotaGuard(refuse=True)])
    def test_quota_refused_for_unreadable_payload(self, client, device, quota_guard):
        response = client.post(
            receive_url(device["id"]),
            json={"sender": 1, "message": 2, "receivedAt": "not a date"},
        )

        assert response.status_code == 429


class TestReceiveSMSSideEffects:
    """Test the background counter and webhook."""

    def test_received_counter_incremented(self, client, device):
        for i in range(2):
            client.post(receive_url(device["id"]), json={"sender": "+1", "message": f"m{i}", "receivedAtInMillis": 1})

        assert fetch_device(device["id"]).received_sms_count == 2

    def test_webhook_notification(self, client, device, notifier):
        response = client.post(
            receive_url(device["id"]),
            json={"sender": "+15551234", "message": "hi", "receivedAtInMillis": 1736935200000},
        )

        assert len(notifier.notifications) == 1
        notification = notifier.notifications[0]
        assert notification["event"] == "MESSAGE_RECEIVED"
        assert notification["owner_id"] == "owner-1"
        assert notification["sms"]["id"] == response.json()["id"]
        assert notification["sms"]["type"] == "RECEIVED"

    @pytest.mark.parametrize("notifier", [FakeNotifier(error=RuntimeError("endpoint down"))])
    def test_webhook_failure_is_swallowed(self, client, device, notifier):
        response = client.post(
            receive_url(device["id"]),
            json={"sender": "+1", "message": "hi", "receivedAtInMillis": 1},
        )

        assert response.status_code == 200
        assert len(notifier.notifications) == 1
        assert fetch_device(device["id"]).received_sms_count == 1

    def test_no_webhook_on_rejection(self, client, device, notifier):
        client.post(receive_url(device["id"]), json={"sender": "+1"})

        assert notifier.notifications == []
        assert fetch_device(device["id"]).received_sms_count == 0


class TestGetReceivedSMS:
    """Test listing received SMS."""

    def test_newest_first_with_device_projection(self, client, device):
        for millis in (1000, 3000, 2000):
            client.post(receive_url(device["id"]), json={"sender": "+1", "message": str(millis), "receivedAtInMillis": millis})
        client.post(f"/api/v1/gateway/devices/{device['id']}/send-sms", json={"message": "out", "recipients": ["+2"]})

        response = client.get(received_url(device["id"]))

        assert response.status_code == 200
        data = response.json()
        assert [m["message"] for m in data] == ["3000", "2000", "1000"]
        assert data[0]["device"] == {
            "id": device["id"],
            "brand": "google",
            "model": "Pixel 7",
            "build_id": "TQ3A.230805.001",
            "enabled": True,
        }

    def test_only_this_device(self, client, device):
        other = register_device(client, buildId="other")
        client.post(receive_url(other["id"]), json={"sender": "+1", "message": "x", "receivedAtInMillis": 1})

        assert client.get(received_url(device["id"])).json() == []

    def test_limit(self, client, device, monkeypatch):
        monkeypatch.setattr("smsrelay.main.settings.RECEIVED_SMS_LIMIT", 2)
        for millis in (1, 2, 3):
            client.post(receive_url(device["id"]), json={"sender": "+1", "message": str(millis), "receivedAtInMillis": millis})

        data = client.get(received_url(device["id"])).json()

        assert [m["message"] for m in data] == ["3", "2"]

    def test_missing_device(self, client):
        response = client.get(received_url("missing"))

        assert response.status_code == 400


class TestStats:
    """Test owner usage stats."""

    def test_empty(self, client):
        response = client.get("/api/v1/gateway/stats", headers=OWNER_HEADERS)

        assert response.status_code == 200
        assert response.json() == {
            "total_sent_sms_count": 0,
            "total_received_sms_count": 0,
            "total_device_count": 0,
        }

    def test_totals_across_devices(self, client):
        first = register_device(client)
        second = register_device(client, buildId="other")
        client.post(f"/api/v1/gateway/devices/{first['id']}/send-sms", json={"message": "a", "recipients": ["+1", "+2"]})
        client.post(f"/api/v1/gateway/devices/{second['id']}/send-sms", json={"message": "b", "recipients": ["+3"]})
        client.post(receive_url(second["id"]), json={"sender": "+1", "message": "c", "receivedAtInMillis": 1})

        data = client.get("/api/v1/gateway/stats", headers=OWNER_HEADERS).json()

        assert data == {
            "total_sent_sms_count": 3,
            "total_received_sms_count": 1,
            "total_device_count": 2,
        }
