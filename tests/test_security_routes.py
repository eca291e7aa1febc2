from tenant_auth.models.audit_log import AuditAction
from tests.conftest import TEST_PASSWORD, enable_two_factor, login_headers

WRONG_PASSWORD = "Wr0ng!Password"


def _fail_login(client, email, times=1):
    for _ in range(times):
        client.post("/api/auth/login", json={"email": email, "password": WRONG_PASSWORD})


def _recommendation_types(client, headers) -> list[str]:
    response = client.get("/api/security/recommendations", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["count"] == len(body["recommendations"])
    return [r["type"] for r in body["recommendations"]]


class TestSecurityOverview:
    def test_overview(self, client, owner, owner_headers):
        _fail_login(client, owner.email)

        response = client.get("/api/security/overview", headers=owner_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["two_factor_enabled"] is False
        assert data["session_stats"]["active_sessions"] == 1
        assert data["failed_attempts"] == 1
        assert data["last_24h_failures"][0]["action"] == AuditAction.USER_LOGIN_FAILED
        assert data["recent_activity"][0]["action"] == AuditAction.USER_LOGIN_FAILED
        assert data["action_stats"]["total_events"] == 1

    def test_overview_only_counts_own_events(self, client, owner, member, member_headers):
        _fail_login(client, owner.email, times=2)

        data = client.get("/api/security/overview", headers=member_headers).json()

        assert data["failed_attempts"] == 0
        assert data["recent_activity"] == []
        assert data["action_stats"]["total_events"] == 0

    def test_available_without_permissions(self, client, member_headers):
        assert client.get("/api/security/overview", headers=member_headers).status_code == 200

    def test_requires_authentication(self, client):
        assert client.get("/api/security/overview").status_code == 401
        assert client.get("/api/security/recommendations").status_code == 401
        assert client.get("/api/security/login-history").status_code == 401


class TestRecommendations:
    def test_suggests_two_factor(self, client, owner_headers):
        assert _recommendation_types(client, owner_headers) == ["enable_2fa"]

    def test_all_good(self, client, db_session, cache, owner, owner_headers):
        enable_two_factor(db_session, cache, owner)

        assert _recommendation_types(client, owner_headers) == ["all_good"]

    def test_many_sessions(self, client, db_session, cache, tenant, owner, owner_headers):
        enable_two_factor(db_session, cache, owner)
        for _ in range(5):
            login_headers(db_session, owner, tenant)

        assert _recommendation_types(client, owner_headers) == ["review_sessions"]

    def test_failed_logins(self, client, db_session, cache, owner, owner_headers):
        enable_two_factor(db_session, cache, owner)
        _fail_login(client, owner.email, times=4)

        response = client.get("/api/security/recommendations", headers=owner_headers)

        (recommendation,) = response.json()["recommendations"]
        assert recommendation["type"] == "failed_logins"
        assert recommendation["count"] == 4

    def test_three_failures_are_tolerated(self, client, db_session, cache, owner, owner_headers):
        enable_two_factor(db_session, cache, owner)
        _fail_login(client, owner.email, times=3)

        assert _recommendation_types(client, owner_headers) == ["all_good"]


class TestLoginHistory:
    def test_history_newest_first(self, client, owner, owner_headers):
        client.post("/api/auth/login", json={"email": owner.email, "password": TEST_PASSWORD})
        _fail_login(client, owner.email)

        response = client.get("/api/security/login-history", headers=owner_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        assert [item["action"] for item in data["items"]] == [AuditAction.USER_LOGIN_FAILED, AuditAction.USER_LOGIN]

    def test_history_is_per_user(self, client, owner, member, member_headers):
        _fail_login(client, owner.email)

        assert client.get("/api/security/login-history", headers=member_headers).json()["count"] == 0

    def test_limit(self, client, owner, owner_headers):
        _fail_login(client, owner.email, times=3)

        response = client.get("/api/security/login-history", headers=owner_headers, params={"limit": 2})

        assert response.json()["count"] == 2
