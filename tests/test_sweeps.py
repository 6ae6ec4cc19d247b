from datetime import datetime, timedelta, timezone

import pytest

import worker.sweeps as sweeps

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeOffers:
    """In-memory stand-in for the offers table and its conditional update."""

    def __init__(self, offers):
        self.offers = offers

    def expire_active_offers(self, now):
        expired = []
        for o in self.offers:
            if o["status"] == "active" and o["expires_at"] < now:
                o["status"] = "expired"
                expired.append(
                    {
                        "id": o["id"],
                        "provider_id": o["provider_id"],
                        "request_id": o["request_id"],
                        "address": "Los Aromos 55",
                        "amount": 1000,
                        "guest_name": "Ana",
                    }
                )
        return expired


def _offer(offer_id, provider_id, expires_at, status="active"):
    return {"id": offer_id, "provider_id": provider_id, "request_id": 10, "expires_at": expires_at, "status": status}


@pytest.fixture
def notifications(monkeypatch):
    inserted = []

    def _insert(items):
        items = list(items)
        inserted.extend(items)
        return len(items)

    monkeypatch.setattr(sweeps, "insert_notifications", _insert)
    return inserted


def test_expire_offers_moves_past_deadline_and_notifies_once(monkeypatch, notifications):
    store = FakeOffers(
        [
            _offer(1, 100, T0 - timedelta(minutes=1)),
            _offer(2, 200, T0 - timedelta(hours=2)),
            _offer(3, 300, T0 + timedelta(minutes=5)),
            _offer(4, 400, T0 - timedelta(minutes=5), status="accepted"),
        ]
    )
    monkeypatch.setattr(sweeps, "expire_active_offers", store.expire_active_offers)

    result = sweeps.expire_offers(now=T0)

    assert result["expired_count"] == 2
    assert isinstance(result["duration_ms"], int)
    assert [o["status"] for o in store.offers] == ["expired", "expired", "active", "accepted"]
    assert sorted(n["user_id"] for n in notifications) == [100, 200]
    first = notifications[0]
    assert first["type"] == "offer_expired"
    assert first["title"] == "Your offer expired"
    assert first["data"] == {"offer_id": 1, "request_id": 10}


def test_expire_offers_is_idempotent(monkeypatch, notifications):
    store = FakeOffers([_offer(1, 100, T0 - timedelta(minutes=1))])
    monkeypatch.setattr(sweeps, "expire_active_offers", store.expire_active_offers)

    assert sweeps.expire_offers(now=T0)["expired_count"] == 1
    assert sweeps.expire_offers(now=T0)["expired_count"] == 0
    assert sweeps.expire_offers(now=T0 + timedelta(hours=1))["expired_count"] == 0
    assert len(notifications) == 1


def test_offer_expiring_exactly_now_is_not_expired(monkeypatch, notifications):
    store = FakeOffers([_offer(1, 100, T0)])
    monkeypatch.setattr(sweeps, "expire_active_offers", store.expire_active_offers)

    assert sweeps.expire_offers(now=T0)["expired_count"] == 0
    assert store.offers[0]["status"] == "active"
    assert sweeps.expire_offers(now=T0 + timedelta(seconds=1))["expired_count"] == 1


def test_notification_failure_does_not_undo_expiry(monkeypatch, caplog):
    store = FakeOffers([_offer(1, 100, T0 - timedelta(minutes=1)), _offer(2, 200, T0 - timedelta(minutes=1))])
    monkeypatch.setattr(sweeps, "expire_active_offers", store.expire_active_offers)

    def _fail(items):
        raise RuntimeError("notifications table locked")

    monkeypatch.setattr(sweeps, "insert_notifications", _fail)

    with caplog.at_level("ERROR"):
        result = sweeps.expire_offers(now=T0)
        assert any("failed to create notifications" in rec.message for rec in caplog.records)

    assert result["expired_count"] == 2
    assert all(o["status"] == "expired" for o in store.offers)


def test_update_failure_propagates(monkeypatch, notifications):
    def _fail(now):
        raise RuntimeError("connection lost")

    monkeypatch.setattr(sweeps, "expire_active_offers", _fail)

    with pytest.raises(RuntimeError):
        sweeps.expire_offers(now=T0)
    assert notifications == []


def test_nothing_to_expire_skips_notifications(monkeypatch, notifications):
    monkeypatch.setattr(sweeps, "expire_active_offers", lambda now: [])
    assert sweeps.expire_offers(now=T0)["expired_count"] == 0
    assert notifications == []


def _stale(request_id, **kw):
    row = {
        "id": request_id,
        "consumer_id": None,
        "guest_name": None,
        "guest_email": None,
        "consumer_email": None,
        "consumer_name": None,
        "address": "Los Aromos 55",
        "amount": 1000,
        "tracking_token": f"tok-{request_id}",
        "has_active_offers": False,
    }
    row.update(kw)
    return row


def test_time_out_requests(monkeypatch, notifications):
    stale = [
        _stale(1, guest_name="Ana", guest_email="ana@example.com"),
        _stale(2, consumer_id=50, consumer_email="bea@example.com", consumer_name="Bea"),
        _stale(3, guest_name="Carla", has_active_offers=True),
        _stale(4, guest_name="Dora"),
    ]
    thresholds = []
    marked = []
    emails = []

    def _get_stale(threshold):
        thresholds.append(threshold)
        return stale

    def _mark(ids, now):
        marked.append(list(ids))
        return list(ids)

    monkeypatch.setattr(sweeps, "get_stale_pending_requests", _get_stale)
    monkeypatch.setattr(sweeps, "mark_requests_timed_out", _mark)
    monkeypatch.setattr(sweeps, "send_text_email", lambda to, subject, body: emails.append((to, body)))

    result = sweeps.time_out_requests(now=T0)

    assert thresholds == [T0 - timedelta(hours=sweeps.REQUEST_TIMEOUT_HOURS)]
    assert marked == [[1, 2, 4]]
    assert result["timed_out_count"] == 3
    assert result["skipped_with_offers"] == 1
    # Request 4 has neither an account nor an email address.
    assert result["notifications_sent"] == 2
    assert result["notifications_failed"] == 1
    assert [to for to, _ in emails] == ["ana@example.com", "bea@example.com"]
    assert "/track/tok-1" in emails[0][1]
    assert "/request/2" in emails[1][1]
    assert [n["user_id"] for n in notifications] == [50]
    assert notifications[0]["type"] == "request_timeout"


def test_time_out_requests_only_reports_rows_it_moved(monkeypatch, notifications):
    monkeypatch.setattr(sweeps, "get_stale_pending_requests", lambda threshold: [_stale(1), _stale(2)])
    # Request 1 was accepted between the read and the update.
    monkeypatch.setattr(sweeps, "mark_requests_timed_out", lambda ids, now: [2])
    monkeypatch.setattr(sweeps, "send_text_email", lambda *a: None)

    result = sweeps.time_out_requests(now=T0)

    assert result["timed_out_count"] == 1


def test_time_out_requests_email_failure_is_counted(monkeypatch, notifications, caplog):
    monkeypatch.setattr(
        sweeps, "get_stale_pending_requests", lambda threshold: [_stale(1, guest_email="ana@example.com")]
    )
    monkeypatch.setattr(sweeps, "mark_requests_timed_out", lambda ids, now: list(ids))

    def _fail(*args):
        raise RuntimeError("SMTP down")

    monkeypatch.setattr(sweeps, "send_text_email", _fail)

    with caplog.at_level("ERROR"):
        result = sweeps.time_out_requests(now=T0)
        assert any("failed to send email" in rec.message for rec in caplog.records)

    assert result["timed_out_count"] == 1
    assert result["notifications_sent"] == 0
    assert result["notifications_failed"] == 1


def test_time_out_requests_with_nothing_stale(monkeypatch):
    monkeypatch.setattr(sweeps, "get_stale_pending_requests", lambda threshold: [])

    def _unexpected(ids, now):
        raise AssertionError("should not update")

    monkeypatch.setattr(sweeps, "mark_requests_timed_out", _unexpected)

    result = sweeps.time_out_requests(now=T0)
    assert result["timed_out_count"] == 0
    assert result["notifications_sent"] == 0
