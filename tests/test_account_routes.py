from decimal import Decimal

from conftest import admin_headers, affiliate_headers
from linkpay.models.database import Affiliate, ClickEvent, Commission, DailyAnalytics, Link, Payout
from linkpay.services.aggregates import utc_today


def _seed_affiliates(api_db):
    with api_db() as db:
        affiliate = Affiliate(name="Ava", email="ava@example.com", role="affiliate", commission_rate=Decimal("10"), status="active")
        other = Affiliate(name="Ben", email="ben@example.com", role="affiliate", commission_rate=Decimal("10"), status="active")
        admin = Affiliate(name="Root", email="root@example.com", role="admin", status="active")
        db.add_all([affiliate, other, admin])
        db.commit()
        return affiliate.id, other.id, admin.id


def _seed_commission(api_db, affiliate_id, amount, status="approved", unique_id="c-1"):
    with api_db() as db:
        commission = Commission(
            affiliate_id=affiliate_id,
            amount=Decimal(amount),
            sale_amount=Decimal(amount) * 10,
            rate_used=Decimal("10"),
            status=status,
            unique_id=unique_id,
        )
        db.add(commission)
        db.commit()
        return commission.id


def test_payouts_require_principal(client, api_db) -> None:
    assert client.get("/api/payouts").status_code == 401
    assert client.get("/api/payouts", headers={"X-Principal-Id": "abc"}).status_code == 401


def test_payout_request_and_balance(client, api_db) -> None:
    affiliate_id, _, _ = _seed_affiliates(api_db)
    _seed_commission(api_db, affiliate_id, "75.00")
    headers = affiliate_headers(affiliate_id)

    too_much = client.post("/api/payouts", json={"amount": 80}, headers=headers)
    assert too_much.status_code == 400
    assert too_much.json() == {"detail": "Insufficient balance"}

    created = client.post("/api/payouts", json={"amount": 50, "method": "PayPal"}, headers=headers)
    assert created.status_code == 201
    payout = created.json()
    assert payout["status"] == "pending"
    assert payout["method"] == "PayPal"
    assert payout["affiliateId"] == affiliate_id

    listing = client.get("/api/payouts", headers=headers).json()
    assert [item["id"] for item in listing["payouts"]] == [payout["id"]]
    assert listing["availableBalance"] == 25.0

    balance = client.get("/api/payouts/balance", headers=headers).json()
    assert balance == {"affiliateId": affiliate_id, "availableBalance": 25.0}


def test_balance_of_other_affiliate_is_admin_only(client, api_db) -> None:
    affiliate_id, other_id, admin_id = _seed_affiliates(api_db)
    _seed_commission(api_db, other_id, "12.00")

    own = client.get(f"/api/payouts/balance?affiliateId={other_id}", headers=affiliate_headers(affiliate_id))
    assert own.json()["affiliateId"] == affiliate_id
    assert own.json()["availableBalance"] == 0.0

    admin_view = client.get(f"/api/payouts/balance?affiliateId={other_id}", headers=admin_headers(admin_id))
    assert admin_view.json() == {"affiliateId": other_id, "availableBalance": 12.0}


def test_admin_routes_reject_affiliates(client, api_db) -> None:
    affiliate_id, _, _ = _seed_affiliates(api_db)
    commission_id = _seed_commission(api_db, affiliate_id, "10.00", status="pending")

    headers = affiliate_headers(affiliate_id)
    assert client.post(f"/admin/commissions/{commission_id}/approve", headers=headers).status_code == 403
    assert client.get("/admin/fraud", headers=headers).status_code == 403
    assert client.get("/admin/audit-logs", headers=headers).status_code == 403


def test_admin_approves_commission_and_settles_payout(client, api_db) -> None:
    affiliate_id, _, admin_id = _seed_affiliates(api_db)
    commission_id = _seed_commission(api_db, affiliate_id, "40.00", status="pending")
    admin = admin_headers(admin_id)

    approved = client.post(f"/admin/commissions/{commission_id}/approve", headers=admin)
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"

    payout = client.post("/api/payouts", json={"amount": 40}, headers=affiliate_headers(affiliate_id)).json()

    completed = client.put(
        f"/admin/payouts/{payout['id']}",
        json={"status": "completed", "transactionId": "txn_1"},
        headers=admin,
    )
    assert completed.status_code == 200
    assert completed.json()["status"] == "completed"
    assert completed.json()["transactionId"] == "txn_1"

    invalid = client.put(f"/admin/payouts/{payout['id']}", json={"status": "rejected"}, headers=admin)
    assert invalid.status_code == 409

    logs = client.get("/admin/audit-logs", headers=admin).json()
    assert {entry["action"] for entry in logs} == {"APPROVE_COMMISSION", "PAYOUT_STATUS_CHANGED"}
    assert logs[0]["admin"]["id"] == admin_id


def test_admin_rejects_commission(client, api_db) -> None:
    affiliate_id, _, admin_id = _seed_affiliates(api_db)
    commission_id = _seed_commission(api_db, affiliate_id, "10.00", status="pending")

    response = client.post(
        f"/admin/commissions/{commission_id}/reject",
        json={"reason": "self-referral"},
        headers=admin_headers(admin_id),
    )

    assert response.status_code == 200
    assert response.json()["status"] == "rejected"
    missing = client.post("/admin/commissions/9999/approve", headers=admin_headers(admin_id))
    assert missing.status_code == 404


def test_admin_creates_and_updates_affiliate(client, api_db) -> None:
    _, _, admin_id = _seed_affiliates(api_db)
    admin = admin_headers(admin_id)

    created = client.post(
        "/admin/affiliates",
        json={"name": "Cleo", "email": "cleo@example.com", "commissionRate": 15},
        headers=admin,
    )
    assert created.status_code == 201
    affiliate = created.json()
    assert affiliate["status"] == "pending"
    assert affiliate["commissionRate"] == 15.0

    duplicate = client.post("/admin/affiliates", json={"name": "Cleo", "email": "cleo@example.com"}, headers=admin)
    assert duplicate.status_code == 400

    updated = client.put(
        f"/admin/affiliates/{affiliate['id']}",
        json={"status": "active", "commissionRate": None},
        headers=admin,
    )
    assert updated.status_code == 200
    assert updated.json()["status"] == "active"
    assert updated.json()["commissionRate"] is None


def test_link_routes(client, api_db) -> None:
    affiliate_id, other_id, _ = _seed_affiliates(api_db)
    body = {"name": "Spring", "url": "https://shop.example.com", "slug": "spring"}

    created = client.post("/api/links", json=body, headers=affiliate_headers(affiliate_id))
    assert created.status_code == 201
    link = created.json()
    assert link["affiliateId"] == affiliate_id
    assert link["clicks"] == 0

    conflict = client.post("/api/links", json=body, headers=affiliate_headers(other_id))
    assert conflict.status_code == 409
    assert conflict.json() == {"detail": "Slug already in use: spring"}

    invalid = client.post(
        "/api/links", json={**body, "slug": "bad slug"}, headers=affiliate_headers(affiliate_id)
    )
    assert invalid.status_code == 400

    assert client.get("/api/links", headers=affiliate_headers(other_id)).json() == []

    forbidden = client.put(
        f"/api/links/{link['id']}/status", json={"status": "inactive"}, headers=affiliate_headers(other_id)
    )
    assert forbidden.status_code == 403
    paused = client.put(
        f"/api/links/{link['id']}/status", json={"status": "inactive"}, headers=affiliate_headers(affiliate_id)
    )
    assert paused.json()["status"] == "inactive"
    assert client.get("/r/spring", follow_redirects=False).status_code == 404


def test_analytics_route(client, api_db) -> None:
    affiliate_id, _, admin_id = _seed_affiliates(api_db)
    with api_db() as db:
        link = Link(
            affiliate_id=affiliate_id,
            name="Spring",
            slug="spring",
            url="https://shop.example.com",
            status="active",
            clicks=0,
            conversions=0,
            revenue=Decimal("0"),
        )
        db.add(link)
        db.flush()
        db.add(
            DailyAnalytics(
                affiliate_id=affiliate_id,
                link_id=link.id,
                link_key=link.id,
                date=utc_today(),
                clicks=8,
                conversions=2,
                revenue=Decimal("120.00"),
            )
        )
        db.commit()

    response = client.get("/api/analytics?range=7d", headers=affiliate_headers(affiliate_id))
    assert response.status_code == 200
    data = response.json()
    assert data["range"] == "7d"
    assert data["summary"] == {"clicks": 8, "conversions": 2, "revenue": 120.0, "conversionRate": 25.0}
    assert data["topLinks"][0]["slug"] == "spring"

    assert client.get("/api/analytics?range=1y", headers=affiliate_headers(affiliate_id)).status_code == 422
    assert client.get("/api/analytics", headers=admin_headers(admin_id)).json()["summary"]["clicks"] == 8


def test_fraud_report_route(client, api_db) -> None:
    affiliate_id, _, admin_id = _seed_affiliates(api_db)
    with api_db() as db:
        link = Link(
            affiliate_id=affiliate_id,
            name="Spring",
            slug="spring",
            url="https://shop.example.com",
            status="active",
            clicks=0,
            conversions=0,
            revenue=Decimal("0"),
        )
        db.add(link)
        db.flush()
        db.add(
            ClickEvent(
                link_id=link.id,
                affiliate_id=affiliate_id,
                ip="1.1.1.1",
                user_agent="curl/8.0",
                referrer="direct",
                device_type="desktop",
                is_bot=True,
                bot_type="http-client",
                fraud_score=100,
            )
        )
        db.commit()

    data = client.get("/admin/fraud", headers=admin_headers(admin_id)).json()

    assert data["recentClicks"][0]["isBot"] is True
    assert data["recentClicks"][0]["link"]["slug"] == "spring"
    assert data["topOffenders"][0]["affiliate"]["id"] == affiliate_id
    assert data["topOffenders"][0]["suspiciousClicks"] == 1


def _seed_daily(api_db, affiliate_id, slug, clicks, conversions, revenue):
    with api_db() as db:
        link = Link(
            affiliate_id=affiliate_id,
            name=slug.title(),
            slug=slug,
            url="https://shop.example.com",
            status="active",
            clicks=0,
            conversions=0,
            revenue=Decimal("0"),
        )
        db.add(link)
        db.flush()
        db.add(
            DailyAnalytics(
                affiliate_id=affiliate_id,
                link_id=link.id,
                link_key=link.id,
                date=utc_today(),
                clicks=clicks,
                conversions=conversions,
                revenue=Decimal(revenue),
            )
        )
        db.commit()
        return link.id


def test_leaderboard_route(client, api_db) -> None:
    affiliate_id, other_id, _ = _seed_affiliates(api_db)
    _seed_daily(api_db, affiliate_id, "spring", 8, 2, "120.00")
    _seed_daily(api_db, other_id, "autumn", 10, 1, "300.00")

    assert client.get("/api/analytics/leaderboard").status_code == 401
    response = client.get("/api/analytics/leaderboard?range=7d", headers=affiliate_headers(affiliate_id))
    assert response.status_code == 200
    board = response.json()["leaderboard"]
    assert [entry["affiliateId"] for entry in board] == [other_id, affiliate_id]
    assert board[0] == {
        "rank": 1,
        "affiliateId": other_id,
        "name": "Ben",
        "email": "ben@example.com",
        "clicks": 10,
        "conversions": 1,
        "revenue": 300.0,
        "conversionRate": 10.0,
    }


def test_funnel_route_scopes_affiliates_to_themselves(client, api_db) -> None:
    affiliate_id, other_id, admin_id = _seed_affiliates(api_db)
    spring_id = _seed_daily(api_db, affiliate_id, "spring", 8, 2, "120.00")
    _seed_daily(api_db, other_id, "autumn", 10, 1, "300.00")

    own = client.get(f"/api/analytics/funnel?affiliateId={other_id}", headers=affiliate_headers(affiliate_id))
    assert own.status_code == 200
    data = own.json()
    assert data["funnel"] == {"clicks": 8, "conversions": 2, "revenue": 120.0, "conversionRate": 25.0}
    assert data["affiliateBreakdown"] == []
    assert [c["linkId"] for c in data["campaignBreakdown"]] == [spring_id]
    assert data["dateRange"]["end"] == utc_today().isoformat()

    overall = client.get("/api/analytics/funnel", headers=admin_headers(admin_id)).json()
    assert overall["funnel"]["clicks"] == 18
    assert [entry["affiliateId"] for entry in overall["affiliateBreakdown"]] == [other_id, affiliate_id]

    scoped = client.get(f"/api/analytics/funnel?affiliateId={other_id}", headers=admin_headers(admin_id)).json()
    assert scoped["funnel"]["revenue"] == 300.0
    assert scoped["affiliateBreakdown"] == []


def test_admin_stats_route(client, api_db) -> None:
    affiliate_id, _, admin_id = _seed_affiliates(api_db)
    _seed_daily(api_db, affiliate_id, "spring", 8, 2, "120.00")
    with api_db() as db:
        db.add(Payout(affiliate_id=affiliate_id, amount=Decimal("40.00"), method="PayPal", status="pending"))
        db.commit()

    assert client.get("/admin/stats", headers=affiliate_headers(affiliate_id)).status_code == 403
    stats = client.get("/admin/stats", headers=admin_headers(admin_id)).json()
    assert stats == {
        "totalAffiliates": 2,
        "activeAffiliates": 2,
        "pendingAffiliates": 0,
        "totalRevenue": 120.0,
        "pendingPayouts": 40.0,
        "monthlyPayouts": 0.0,
    }
