from datetime import timedelta

from tenant_auth.models.base import utcnow
from tenant_auth.models.session import UserSession
from tenant_auth.services.session_service import SessionService
from tests.conftest import TEST_DEVICE, login_headers


class TestSessionRegistry:
    def test_refresh_token_stored_hashed(self, db_session, tenant, owner):
        issued = SessionService(db_session).create_session(owner, tenant, TEST_DEVICE)

        assert issued.session.refresh_token_hash
        assert issued.session.refresh_token_hash != issued.refresh_token
        assert len(issued.session.refresh_token_hash) == 64

    def test_device_details_recorded(self, db_session, tenant, owner):
        session = SessionService(db_session).create_session(owner, tenant, TEST_DEVICE).session

        assert session.browser == "Firefox"
        assert session.os == "Linux"
        assert session.ip_address == "203.0.113.10"

    def test_expired_session_rejected(self, client, db_session, tenant, owner):
        headers = login_headers(db_session, owner, tenant)
        session = db_session.query(UserSession).one()
        session.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        response = client.get("/api/auth/me", headers=headers)

        assert response.status_code == 401
        assert response.json()["detail"] == "Session has expired"

    def test_cleanup_expired(self, db_session, tenant, owner):
        service = SessionService(db_session)
        stale = service.create_session(owner, tenant, TEST_DEVICE).session
        service.create_session(owner, tenant, TEST_DEVICE)
        stale.expires_at = utcnow() - timedelta(days=1)
        db_session.commit()

        assert service.cleanup_expired() == 1
        assert db_session.query(UserSession).count() == 1

    def test_activity_touched_after_interval(self, client, db_session, tenant, owner):
        headers = login_headers(db_session, owner, tenant)
        session = db_session.query(UserSession).one()
        old = utcnow() - timedelta(minutes=10)
        session.last_activity_at = old
        db_session.commit()

        client.get("/api/auth/me", headers=headers)

        db_session.refresh(session)
        assert session.last_activity_at > old


class TestSessionRoutes:
    def test_list_marks_current(self, client, db_session, tenant, owner, owner_headers):
        login_headers(db_session, owner, tenant)

        response = client.get("/api/sessions", headers=owner_headers)

        assert response.status_code == 200
        sessions = response.json()
        assert len(sessions) == 2
        assert sum(s["is_current"] for s in sessions) == 1

    def test_only_own_sessions_listed(self, client, member, member_headers, owner_headers):
        response = client.get("/api/sessions", headers=owner_headers)

        assert len(response.json()) == 1

    def test_stats(self, client, db_session, tenant, owner, owner_headers):
        login_headers(db_session, owner, tenant)

        stats = client.get("/api/sessions/stats", headers=owner_headers).json()

        assert stats["active_sessions"] == 2
        assert stats["devices"] == {"Desktop": 2}

    def test_revoke_one(self, client, db_session, tenant, owner, owner_headers):
        other = login_headers(db_session, owner, tenant)
        sessions = client.get("/api/sessions", headers=owner_headers).json()
        target = next(s for s in sessions if not s["is_current"])

        response = client.delete(f"/api/sessions/{target['id']}", headers=owner_headers)

        assert response.status_code == 200
        assert client.get("/api/auth/me", headers=other).status_code == 401
        assert client.get("/api/auth/me", headers=owner_headers).status_code == 200

    def test_cannot_revoke_someone_elses(self, client, db_session, member, member_headers, owner_headers):
        member_session = db_session.query(UserSession).filter(UserSession.user_id == member.id).one()

        response = client.delete(f"/api/sessions/{member_session.id}", headers=owner_headers)

        assert response.status_code == 404
        assert client.get("/api/auth/me", headers=member_headers).status_code == 200

    def test_revoke_others(self, client, db_session, tenant, owner, owner_headers):
        first = login_headers(db_session, owner, tenant)
        second = login_headers(db_session, owner, tenant)

        response = client.delete("/api/sessions/others", headers=owner_headers)

        assert response.json()["revoked"] == 2
        assert client.get("/api/auth/me", headers=first).status_code == 401
        assert client.get("/api/auth/me", headers=second).status_code == 401
        assert client.get("/api/auth/me", headers=owner_headers).status_code == 200

    def test_admin_revokes_user_sessions(self, client, member, member_headers, owner_headers):
        listed = client.get(f"/api/users/{member.id}/sessions", headers=owner_headers)
        assert len(listed.json()) == 1

        response = client.delete(f"/api/users/{member.id}/sessions", headers=owner_headers)

        assert response.json()["revoked"] == 1
        assert client.get("/api/auth/me", headers=member_headers).status_code == 401

    def test_member_cannot_view_user_sessions(self, client, owner, member_headers):
        assert client.get(f"/api/users/{owner.id}/sessions", headers=member_headers).status_code == 403
