import json
from decimal import Decimal

import stripe
from sqlalchemy import select

from conftest import admin_headers
from linkpay.models.database import Affiliate, ClickEvent, Commission, Link
import linkpay.routes.redirect as redirect_routes
import linkpay.services.stripe_events as stripe_events


CHROME_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36"


def _seed(api_db, *, link_rate=None):
    with api_db() as db:
        affiliate = Affiliate(name="Ava", email="ava@example.com", role="affiliate", commission_rate=Decimal("10"), status="active")
        admin = Affiliate(name="Root", email="root@example.com", role="admin", status="active")
        db.add_all([affiliate, admin])
        db.flush()
        link = Link(
            affiliate_id=affiliate.id,
            name="Spring",
            slug="spring",
            url="https://shop.example.com/spring",
            status="active",
            commission_rate=link_rate,
            clicks=0,
            conversions=0,
            revenue=Decimal("0"),
        )
        db.add(link)
        db.commit()
        return affiliate.id, link.id, admin.id


def _set_cookies(response) -> str:
    return "; ".join(response.headers.get_list("set-cookie"))


def test_redirect_unknown_slug_is_404_without_event(client, api_db) -> None:
    _seed(api_db)

    response = client.get("/r/nope", follow_redirects=False)

    assert response.status_code == 404
    with api_db() as db:
        assert db.execute(select(ClickEvent)).first() is None


def test_redirect_sets_attribution_cookies(client, api_db) -> None:
    affiliate_id, link_id, _ = _seed(api_db)

    response = client.get("/r/spring", headers={"User-Agent": CHROME_UA}, follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"] == "https://shop.example.com/spring"
    cookies = _set_cookies(response)
    assert f"affiliate_id={affiliate_id}" in cookies
    assert f"link_id={link_id}" in cookies
    assert "HttpOnly" in cookies
    assert "Max-Age=2592000" in cookies
    with api_db() as db:
        assert db.execute(select(Link.clicks).where(Link.id == link_id)).scalar_one() == 1


def test_bot_gets_same_redirect_without_cookies(client, api_db) -> None:
    _, link_id, _ = _seed(api_db)

    response = client.get(
        "/r/spring",
        headers={"User-Agent": "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"},
        follow_redirects=False,
    )

    assert response.status_code == 307
    assert response.headers["location"] == "https://shop.example.com/spring"
    assert "affiliate_id=" not in _set_cookies(response)
    with api_db() as db:
        event = db.execute(select(ClickEvent)).scalar_one()
        assert event.is_bot is True
        assert db.execute(select(Link.clicks).where(Link.id == link_id)).scalar_one() == 0


def test_tracking_failure_still_redirects(client, api_db, monkeypatch) -> None:
    _seed(api_db)

    async def _broken(*_args, **_kwargs):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(redirect_routes, "record_click", _broken)

    response = client.get("/r/spring", headers={"User-Agent": CHROME_UA}, follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"] == "https://shop.example.com/spring"
    assert "affiliate_id=" not in _set_cookies(response)


def test_pixel_conversion_accepts_snake_case_and_generates_id(client, api_db) -> None:
    affiliate_id, link_id, _ = _seed(api_db, link_rate=Decimal("20"))

    response = client.post(
        "/api/track/conversion",
        json={"affiliate_id": affiliate_id, "link_id": link_id, "sale_amount": 50},
        headers={"Origin": "https://merchant.example"},
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    data = response.json()
    assert data["success"] is True
    assert data["status"] == "created"
    assert data["commission"]["amount"] == 10.0
    assert data["commission"]["uniqueId"].startswith("pixel_")


def test_pixel_conversion_duplicate_is_acknowledged(client, api_db) -> None:
    affiliate_id, _, _ = _seed(api_db)
    body = {"affiliateId": affiliate_id, "saleAmount": 100, "uniqueId": "order-77"}

    first = client.post("/api/track/conversion", json=body)
    second = client.post("/api/track/conversion", json=body)

    assert first.json()["status"] == "created"
    assert second.status_code == 200
    assert second.json()["status"] == "skipped_duplicate"
    assert second.json()["commission"]["id"] == first.json()["commission"]["id"]


def test_pixel_conversion_errors_are_400_with_cors(client, api_db) -> None:
    _seed(api_db)

    unknown = client.post("/api/track/conversion", json={"affiliateId": 9999, "saleAmount": 10})
    missing = client.post("/api/track/conversion", json={"saleAmount": 10})

    assert unknown.status_code == 400
    assert unknown.headers["access-control-allow-origin"] == "*"
    assert missing.status_code == 400
    assert "affiliateId" in missing.json()["detail"]


def test_pixel_preflight(client) -> None:
    response = client.options("/api/track/conversion", headers={"Origin": "https://merchant.example"})
    assert response.status_code == 204
    assert response.headers["access-control-allow-origin"] == "*"


def _stripe_post(client, event):
    return client.post(
        "/api/webhooks/stripe",
        content=json.dumps(event),
        headers={"Stripe-Signature": "t=1,v1=test", "Content-Type": "application/json"},
    )


def _accept_signatures(monkeypatch) -> list:
    verified = []

    def _construct_event(payload, signature, secret):
        verified.append((signature, secret))
        return json.loads(payload)

    monkeypatch.setattr(stripe_events.settings, "stripe_webhook_secret", "whsec_test")
    monkeypatch.setattr(stripe.Webhook, "construct_event", _construct_event)
    return verified


def test_stripe_checkout_then_refund(client, api_db, monkeypatch) -> None:
    affiliate_id, link_id, _ = _seed(api_db)
    verified = _accept_signatures(monkeypatch)

    checkout = {
        "id": "evt_1",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_test_1",
                "amount_total": 10000,
                "currency": "usd",
                "payment_intent": "pi_1",
                "metadata": {"affiliate_id": str(affiliate_id), "link_id": str(link_id)},
            }
        },
    }
    response = _stripe_post(client, checkout)
    assert response.status_code == 200
    assert response.json() == {"received": True, "status": "created", "reason": None}
    assert verified == [("t=1,v1=test", "whsec_test")]

    redelivery = _stripe_post(client, checkout)
    assert redelivery.json()["status"] == "skipped_duplicate"

    refund = {
        "id": "evt_2",
        "type": "charge.refunded",
        "data": {
            "object": {
                "id": "ch_1",
                "payment_intent": "pi_1",
                "amount": 10000,
                "amount_refunded": 5000,
            }
        },
    }
    response = _stripe_post(client, refund)
    assert response.json()["status"] == "reversed"

    with api_db() as db:
        commission = db.execute(select(Commission)).scalar_one()
        assert commission.status == "reversed"
        assert commission.reverse_amount == Decimal("5.00")


def test_stripe_unknown_event_is_ignored(client, api_db, monkeypatch) -> None:
    _accept_signatures(monkeypatch)

    response = _stripe_post(client, {"id": "evt_3", "type": "customer.created", "data": {"object": {}}})

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"


def test_stripe_webhook_requires_signature(client, api_db, monkeypatch) -> None:
    monkeypatch.setattr(stripe_events.settings, "stripe_webhook_secret", "whsec_test")

    response = client.post("/api/webhooks/stripe", content=b"{}")

    assert response.status_code == 400


def test_stripe_webhook_rejects_bad_signature(client, api_db, monkeypatch) -> None:
    monkeypatch.setattr(stripe_events.settings, "stripe_webhook_secret", "whsec_test")

    def _reject(payload, signature, secret):
        raise stripe.SignatureVerificationError("bad signature", signature)

    monkeypatch.setattr(stripe.Webhook, "construct_event", _reject)

    response = _stripe_post(client, {"id": "evt_4", "type": "charge.refunded"})

    assert response.status_code == 400
    assert response.json() == {"detail": "Invalid signature"}


def test_manual_refund_is_admin_only(client, api_db) -> None:
    affiliate_id, _, admin_id = _seed(api_db)
    with api_db() as db:
        db.add(
            Commission(
                affiliate_id=affiliate_id,
                amount=Decimal("10.00"),
                sale_amount=Decimal("100.00"),
                rate_used=Decimal("10"),
                status="approved",
                unique_id="order-9",
                stripe_charge_id="ch_9",
            )
        )
        db.commit()

    body = {"chargeId": "ch_9", "refundAmount": 100, "reason": "chargeback"}
    forbidden = client.post(
        "/api/webhooks/refunds",
        json=body,
        headers={"X-Principal-Id": str(affiliate_id), "X-Principal-Role": "affiliate"},
    )
    assert forbidden.status_code == 403

    response = client.post("/api/webhooks/refunds", json=body, headers=admin_headers(admin_id))
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "reversed"
    assert data["reverseAmount"] == 10.0
    assert data["refundProportion"] == 1.0

    again = client.post("/api/webhooks/refunds", json=body, headers=admin_headers(admin_id))
    assert again.json()["status"] == "already_reversed"
