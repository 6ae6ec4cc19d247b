from datetime import datetime, timedelta, timezone

import pytest

import worker.sweeps as sweeps
from core.db.base import get_conn
from core.database import (
    OfferError,
    accept_offer,
    create_offer,
    create_user,
    create_water_request,
    expire_active_offers,
    get_notifications_for_user,
    get_offers_for_request,
    get_request,
)

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _request(consumer_id=None, **kw):
    fields = dict(
        address="Los Aromos 55, Maipú",
        amount=1000,
        guest_name="Ana",
        guest_phone="+56912345678",
        special_instructions="Blue gate",
        consumer_id=consumer_id,
    )
    fields.update(kw)
    return create_water_request(**fields)


def _offer(request_id, provider_id, now=T0):
    return create_offer(request_id=request_id, provider_id=provider_id, price=15000, now=now)


def _offer_status(offer_id):
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("SELECT status FROM offers WHERE id = ?", (offer_id,))
    row = cur.fetchone()
    conn.close()
    return row["status"]


def test_offer_lifecycle_and_expiry(db):
    supplier = create_user("s1@example.com", "Passw0rd1", role="supplier", name="Aguas Sur")
    req = _request()
    offer = _offer(req["id"], supplier)

    assert offer["status"] == "active"
    assert offer["expires_at"] == T0 + timedelta(minutes=30)

    with pytest.raises(OfferError) as exc:
        _offer(req["id"], supplier)
    assert exc.value.code == "DUPLICATE"

    # Deadline is exclusive: an offer expiring exactly now stays active.
    assert expire_active_offers(offer["expires_at"]) == []
    expired = expire_active_offers(offer["expires_at"] + timedelta(seconds=1))
    assert [o["id"] for o in expired] == [offer["id"]]
    assert expired[0]["address"] == "Los Aromos 55, Maipú"
    assert expire_active_offers(T0 + timedelta(days=1)) == []
    assert _offer_status(offer["id"]) == "expired"


def test_expire_sweep_notifies_provider_once(db):
    supplier = create_user("s2@example.com", "Passw0rd1", role="supplier")
    req = _request()
    _offer(req["id"], supplier)

    later = T0 + timedelta(hours=1)
    assert sweeps.expire_offers(now=later)["expired_count"] == 1
    assert sweeps.expire_offers(now=later)["expired_count"] == 0

    notes = get_notifications_for_user(supplier)
    assert len(notes) == 1
    assert notes[0]["type"] == "offer_expired"


def test_accept_offer_cancels_siblings(db):
    consumer = create_user("c@example.com", "Passw0rd1", role="consumer")
    first = create_user("s3@example.com", "Passw0rd1", role="supplier")
    second = create_user("s4@example.com", "Passw0rd1", role="supplier")
    req = _request(consumer_id=consumer)
    chosen = _offer(req["id"], first)
    other = _offer(req["id"], second)

    accepted = accept_offer(
        offer_id=chosen["id"], request_id=req["id"], consumer_id=consumer, now=T0 + timedelta(minutes=5)
    )

    assert accepted["status"] == "accepted"
    assert _offer_status(other["id"]) == "cancelled"
    assert get_request(req["id"])["status"] == "accepted"

    with pytest.raises(OfferError) as exc:
        _offer(req["id"], second)
    assert exc.value.code == "REQUEST_CLOSED"


def test_accept_rules(db):
    consumer = create_user("c2@example.com", "Passw0rd1", role="consumer")
    stranger = create_user("x@example.com", "Passw0rd1", role="consumer")
    supplier = create_user("s5@example.com", "Passw0rd1", role="supplier")
    req = _request(consumer_id=consumer)
    offer = _offer(req["id"], supplier)

    with pytest.raises(OfferError) as exc:
        accept_offer(offer_id=offer["id"], request_id=req["id"], consumer_id=stranger, now=T0)
    assert exc.value.code == "FORBIDDEN"

    with pytest.raises(OfferError) as exc:
        accept_offer(offer_id=offer["id"], request_id=req["id"], consumer_id=consumer, now=T0 + timedelta(hours=1))
    assert exc.value.code == "EXPIRED"

    expire_active_offers(T0 + timedelta(hours=1))
    with pytest.raises(OfferError) as exc:
        accept_offer(offer_id=offer["id"], request_id=req["id"], consumer_id=consumer, now=T0)
    assert exc.value.code == "NOT_ACTIVE"

    assert [o["status"] for o in get_offers_for_request(req["id"])] == ["expired"]


def test_request_timeout_sweep(db, monkeypatch):
    monkeypatch.setattr(sweeps, "send_text_email", lambda *a: None)
    consumer = create_user("c3@example.com", "Passw0rd1", role="consumer")
    supplier = create_user("s6@example.com", "Passw0rd1", role="supplier")
    lonely = _request(consumer_id=consumer)
    busy = _request()
    fresh = _request()

    now = datetime.now(timezone.utc)
    _offer(busy["id"], supplier, now=now)
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "UPDATE water_requests SET created_at = ? WHERE id IN (?, ?)",
        (now - timedelta(hours=5), lonely["id"], busy["id"]),
    )
    conn.commit()
    conn.close()

    result = sweeps.time_out_requests(now=now)

    assert result["timed_out_count"] == 1
    assert result["skipped_with_offers"] == 1
    assert get_request(lonely["id"])["status"] == "no_offers"
    assert get_request(busy["id"])["status"] == "pending"
    assert get_request(fresh["id"])["status"] == "pending"
    assert [n["type"] for n in get_notifications_for_user(consumer)] == ["request_timeout"]

    assert sweeps.time_out_requests(now=now)["timed_out_count"] == 0


def test_request_timeout_skips_request_that_got_an_offer_mid_sweep(db, monkeypatch):
    monkeypatch.setattr(sweeps, "send_text_email", lambda *a: None)
    supplier = create_user("s7@example.com", "Passw0rd1", role="supplier")
    req = _request()

    now = datetime.now(timezone.utc)
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("UPDATE water_requests SET created_at = ? WHERE id = ?", (now - timedelta(hours=5), req["id"]))
    conn.commit()
    conn.close()

    real_get_stale = sweeps.get_stale_pending_requests

    def _get_stale_then_offer(threshold):
        stale = real_get_stale(threshold)
        # A supplier answers after the sweep has read the request.
        _offer(req["id"], supplier, now=now)
        return stale

    monkeypatch.setattr(sweeps, "get_stale_pending_requests", _get_stale_then_offer)

    result = sweeps.time_out_requests(now=now)

    assert result["timed_out_count"] == 0
    assert get_request(req["id"])["status"] == "pending"
    offer = get_offers_for_request(req["id"])[0]
    consumer = create_user("c4@example.com", "Passw0rd1", role="consumer")
    assert accept_offer(offer_id=offer["id"], request_id=req["id"], consumer_id=consumer, now=now)["status"] == "accepted"
