"""
API tests: the negotiation flow end to end through FastAPI.

Uses the TestClient fixture bound to the in-memory session and the
recording notifier.
"""
from quote_engine.auth import create_access_token


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email, user.role.value)}"}


def create_quote(client, customer, agent, **overrides):
    body = {
        "agent_id": agent.id,
        "title": "Fix leaking tap",
        "description": "Tap in kitchen drips constantly",
    }
    body.update(overrides)
    return client.post("/quotes", json=body, headers=auth_headers(customer))


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_requires_token(client):
    response = client.get("/quotes")
    assert response.status_code in (401, 403)


def test_bad_token(client):
    response = client.get("/quotes", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


# =============================================================================
# NEGOTIATION FLOW
# =============================================================================

def test_full_negotiation(client, notifier, customer, agent, admin):
    created = create_quote(client, customer, agent)
    assert created.status_code == 200
    quote_id = created.json()["quote"]["id"]
    assert created.json()["quote"]["status"] == "pending"

    proposed = client.post(
        f"/quotes/{quote_id}/propose", json={"amount": "£200 fixed"}, headers=auth_headers(agent),
    )
    assert proposed.json()["quote"]["active_offer"] == {
        "party": "agent", "amount": "£200 fixed", "reasoning": None,
    }

    countered = client.post(
        f"/quotes/{quote_id}/counter",
        json={"amount": "£150, I can supply materials"},
        headers=auth_headers(customer),
    )
    quote = countered.json()["quote"]
    assert quote["status"] == "negotiating"
    assert quote["agent_offer_active"] is False
    assert quote["customer_offer_active"] is True

    accepted = client.post(f"/quotes/{quote_id}/accept", headers=auth_headers(agent))
    assert accepted.json()["changed"] is True
    assert accepted.json()["quote"]["status"] == "payment_pending"
    assert accepted.json()["quote"]["final_agreed_price"] == "£150, I can supply materials"

    again = client.post(f"/quotes/{quote_id}/accept", headers=auth_headers(agent))
    assert again.status_code == 200
    assert again.json()["changed"] is False
    assert again.json()["quote"]["final_agreed_price"] == "£150, I can supply materials"

    paid = client.post(
        "/payments/outcome",
        json={"quote_request_id": quote_id, "succeeded": True, "payment_reference": "pi_123"},
        headers=auth_headers(admin),
    )
    assert paid.json()["quote"]["status"] == "completed"

    assert client.get("/quotes", headers=auth_headers(customer)).json() == []
    assert len(notifier.sent) == 5


def test_blocked_creation_returns_422(client, customer, agent):
    response = create_quote(client, customer, agent, description="Fix leaking tap, call 07911123456")

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["error"] == "ContactInfoViolationError"
    assert detail["message"] == "Phone number detected"
    assert detail["fields"] == ["description"]
    assert detail["violation_count"] == 1
    assert detail["suspended"] is False

    assert client.get("/quotes", headers=auth_headers(customer)).json() == []


def test_suspended_user_gets_403_but_can_read(client, customer, agent):
    quote_id = create_quote(client, customer, agent).json()["quote"]["id"]
    for _ in range(3):
        client.post(
            f"/quotes/{quote_id}/messages",
            json={"text": "call me on 07911123456"},
            headers=auth_headers(customer),
        )

    response = client.post(
        f"/quotes/{quote_id}/messages", json={"text": "Are you free on Tuesday?"}, headers=auth_headers(customer),
    )
    assert response.status_code == 403
    assert response.json()["detail"]["error"] == "AccountSuspendedError"

    assert client.get(f"/quotes/{quote_id}", headers=auth_headers(customer)).status_code == 200
    assert client.get(f"/quotes/{quote_id}/messages", headers=auth_headers(customer)).status_code == 200

    me = client.get("/compliance/me", headers=auth_headers(customer)).json()
    assert me["suspended"] is True
    assert me["violation_count"] == 3
    assert me["suspension_threshold"] == 3


def test_dirty_comment_asks_client_to_clear_draft(client, customer, agent):
    quote_id = create_quote(client, customer, agent).json()["quote"]["id"]

    response = client.post(
        f"/quotes/{quote_id}/messages", json={"text": "add me on WhatsApp"}, headers=auth_headers(agent),
    )

    assert response.status_code == 422
    assert response.json()["detail"]["clear_draft"] is True


def test_dismiss_routes_by_caller(client, customer, agent):
    quote_id = create_quote(client, customer, agent).json()["quote"]["id"]

    by_agent = client.post(f"/quotes/{quote_id}/dismiss", headers=auth_headers(agent))
    assert by_agent.json()["quote"]["status"] == "dismissed_by_agent"
    assert client.get(f"/quotes/{quote_id}", headers=auth_headers(customer)).json()["status"] == "pending"

    by_customer = client.post(
        f"/quotes/{quote_id}/dismiss", json={"reason": "Found someone nearer"}, headers=auth_headers(customer),
    )
    assert by_customer.json()["quote"]["status"] == "dismissed_by_customer"
    assert by_customer.json()["quote"]["dismissal_reason"] == "Found someone nearer"


def test_outsider_gets_403(client, customer, agent, other_agent):
    quote_id = create_quote(client, customer, agent).json()["quote"]["id"]

    response = client.post(
        f"/quotes/{quote_id}/propose", json={"amount": "£100"}, headers=auth_headers(other_agent),
    )

    assert response.status_code == 403
    assert response.json()["detail"]["error"] == "NotAPartyError"


def test_unknown_quote_is_404(client, customer):
    response = client.get("/quotes/does-not-exist", headers=auth_headers(customer))
    assert response.status_code == 404


def test_counter_before_quote_is_409(client, customer, agent):
    quote_id = create_quote(client, customer, agent).json()["quote"]["id"]

    response = client.post(f"/quotes/{quote_id}/counter", json={"amount": "£150"}, headers=auth_headers(customer))

    assert response.status_code == 409


def test_archive_is_admin_only(client, customer, agent, admin):
    quote_id = create_quote(client, customer, agent).json()["quote"]["id"]

    assert client.post(f"/quotes/{quote_id}/archive", headers=auth_headers(customer)).status_code == 403

    response = client.post(f"/quotes/{quote_id}/archive", headers=auth_headers(admin))
    assert response.json()["quote"]["status"] == "archived"


# =============================================================================
# POLICY SCAN
# =============================================================================

def test_scan_text(client, customer):
    response = client.post("/policy/scan", json={"text": "email me at bob@example.com"}, headers=auth_headers(customer))

    data = response.json()
    assert data["matched"] is True
    assert "email" in data["categories"]


def test_scan_fields(client, customer):
    response = client.post(
        "/policy/scan",
        json={"fields": {"title": "Fix leaking tap", "description": "call 07911123456"}},
        headers=auth_headers(customer),
    )

    data = response.json()
    assert data["matched"] is True
    assert list(data["fields"]) == ["description"]


def test_scan_records_nothing(client, customer):
    client.post("/policy/scan", json={"text": "call 07911123456"}, headers=auth_headers(customer))
    assert client.get("/compliance/me", headers=auth_headers(customer)).json()["violation_count"] == 0


def test_scan_needs_input(client, customer):
    assert client.post("/policy/scan", json={}, headers=auth_headers(customer)).status_code == 400


# =============================================================================
# ADMIN
# =============================================================================

def suspend(client, user, quote_id):
    for _ in range(3):
        client.post(
            f"/quotes/{quote_id}/messages",
            json={"text": "call me on 07911123456"},
            headers=auth_headers(user),
        )


def test_admin_review_and_unsuspend(client, customer, agent, admin):
    quote_id = create_quote(client, customer, agent).json()["quote"]["id"]
    suspend(client, customer, quote_id)

    suspended = client.get("/admin/compliance/suspended", headers=auth_headers(admin)).json()
    assert [s["user_id"] for s in suspended] == [customer.id]

    violations = client.get(f"/admin/compliance/{customer.id}/violations", headers=auth_headers(admin)).json()
    assert len(violations) == 3
    assert violations[0]["location"] == "quote_comment"

    status = client.post(
        f"/admin/compliance/{customer.id}/unsuspend", json={"notes": "Appeal accepted"}, headers=auth_headers(admin),
    ).json()
    assert status["suspended"] is False
    assert status["violation_count"] == 3

    detail = client.get(f"/admin/compliance/{customer.id}", headers=auth_headers(admin)).json()
    assert [a["action"] for a in detail["actions"]] == ["suspended", "unsuspended"]

    response = client.post(
        f"/quotes/{quote_id}/messages", json={"text": "Sorry about that"}, headers=auth_headers(customer),
    )
    assert response.status_code == 200


def test_admin_clear(client, customer, agent, admin):
    quote_id = create_quote(client, customer, agent).json()["quote"]["id"]
    suspend(client, customer, quote_id)

    status = client.post(f"/admin/compliance/{customer.id}/clear", headers=auth_headers(admin)).json()

    assert status["violation_count"] == 0
    assert status["suspended"] is False


def test_admin_routes_refuse_parties(client, customer):
    response = client.get("/admin/compliance/suspended", headers=auth_headers(customer))
    assert response.status_code == 403


def test_admin_unknown_user(client, admin):
    response = client.get("/admin/compliance/nobody", headers=auth_headers(admin))
    assert response.status_code == 404
