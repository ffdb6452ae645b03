"""
Credential gateway tests.

Verifies:
- password failures are counted, never lock, and past the threshold alert
  admins and suggest OTP
- OTP issue is rate limited per user
- OTP_MAX_ATTEMPTS wrong codes lock the account; a correct code is refused
  while locked and accepted once the window has passed
- any successful login clears the counters
- logout, change-password and reset-password revoke sessions
"""

from datetime import timedelta

from pettycash.extensions import db
from pettycash.models import LoginActivity, User
from pettycash.time_utils import utcnow

from conftest import TEST_PASSWORD


NEW_PASSWORD = "Better#Pass456"


def _login(client, email, password=TEST_PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def _request_otp(client, email, otp_type=None):
    body = {"email": email}
    if otp_type:
        body["otp_type"] = otp_type
    return client.post("/api/auth/request-otp", json=body)


def _verify(client, email, code):
    return client.post("/api/auth/verify-otp", json={"email": email, "otp": code})


def _reload(user) -> User:
    db.session.expire_all()
    return db.session.get(User, user.id)


# =============================================================================
# PASSWORD LOGIN
# =============================================================================


class TestPasswordLogin:

    def test_login_success(self, client, employee):
        response = _login(client, employee.email)
        assert response.status_code == 200
        data = response.get_json()["data"]
        assert data["user"]["email"] == employee.email
        assert "CREATE_TRANSACTION" in data["permissions"]
        assert len(data["token"]) == 64

    def test_email_is_case_insensitive(self, client, employee):
        assert _login(client, "  Employee@PettyCash.test ").status_code == 200

    def test_unknown_email(self, client):
        response = _login(client, "nobody@pettycash.test")
        assert response.status_code == 401
        assert response.get_json()["success"] is False

    def test_missing_fields(self, client):
        assert client.post("/api/auth/login", json={"email": "a@b.test"}).status_code == 400

    def test_failures_below_threshold(self, client, employee, admin, outbox):
        response = _login(client, employee.email, "wrong")
        body = response.get_json()

        assert response.status_code == 401
        assert body["failed_attempts"] == 1
        assert "suggest_otp" not in body
        assert _reload(employee).failed_password_attempts == 1
        assert not any("Security alert" in m["subject"] for m in outbox)

    def test_threshold_notifies_admins_and_suggests_otp(self, client, employee, admin, outbox):
        for _ in range(2):
            _login(client, employee.email, "wrong")
        response = _login(client, employee.email, "wrong")
        body = response.get_json()

        assert response.status_code == 401
        assert body["failed_attempts"] == 3
        assert body["suggest_otp"] is True

        alerts = [m for m in outbox if "Security alert" in m["subject"]]
        assert len(alerts) == 1
        assert alerts[0]["to"] == [admin.email]
        assert employee.email in alerts[0]["body"]

    def test_configured_alert_recipients(self, app, client, employee, outbox):
        app.config["ADMIN_ALERT_EMAILS"] = ["security@pettycash.test"]
        for _ in range(3):
            _login(client, employee.email, "wrong")
        alerts = [m for m in outbox if "Security alert" in m["subject"]]
        assert alerts[0]["to"] == ["security@pettycash.test"]

    def test_password_failures_never_lock(self, client, employee):
        for _ in range(8):
            assert _login(client, employee.email, "wrong").status_code == 401
        assert _reload(employee).account_locked_until is None

        assert _login(client, employee.email).status_code == 200
        assert _reload(employee).failed_password_attempts == 0

    def test_passwordless_user_is_sent_to_otp(self, client, make_user):
        user = make_user("employee", "otp-only@pettycash.test", password=False)
        response = _login(client, user.email, "Anything#1")
        assert response.status_code == 401
        assert response.get_json()["suggest_otp"] is True

    def test_inactive_user_rejected(self, client, db_session, employee):
        employee.is_active = False
        db_session.commit()
        assert _login(client, employee.email).status_code == 401

    def test_login_activity_recorded(self, client, employee):
        _login(client, employee.email, "wrong")
        _login(client, employee.email)
        rows = db.session.query(LoginActivity).filter_by(email=employee.email).order_by(LoginActivity.id).all()
        assert [r.login_status for r in rows] == ["failed", "success"]
        assert rows[1].login_method == "password"
        assert rows[1].name == employee.name
        assert rows[1].role == "employee"


# =============================================================================
# OTP
# =============================================================================


class TestOtp:

    def test_request_and_verify(self, client, employee, otp_code):
        response = _request_otp(client, employee.email)
        assert response.status_code == 200
        assert response.get_json()["data"]["expires_in_minutes"] == 10

        response = _verify(client, employee.email, otp_code(employee.email))
        assert response.status_code == 200
        token = response.get_json()["data"]["token"]

        profile = client.get("/api/auth/profile", headers={"Authorization": f"Bearer {token}"})
        assert profile.status_code == 200
        assert profile.get_json()["data"]["session"]["login_method"] == "otp"

    def test_code_is_single_use(self, client, employee, otp_code):
        _request_otp(client, employee.email)
        code = otp_code(employee.email)
        assert _verify(client, employee.email, code).status_code == 200
        assert _verify(client, employee.email, code).status_code == 400

    def test_unknown_email(self, client):
        assert _request_otp(client, "ghost@pettycash.test").status_code == 404

    def test_invalid_otp_type(self, client, employee):
        assert _request_otp(client, employee.email, "sms").status_code == 400

    def test_rate_limited_within_cooldown(self, client, employee):
        assert _request_otp(client, employee.email).status_code == 200
        response = _request_otp(client, employee.email)
        assert response.status_code == 429
        assert 1 <= response.get_json()["retry_after_seconds"] <= 60

    def test_new_request_invalidates_previous_code(self, client, db_session, employee, otp_code):
        _request_otp(client, employee.email)
        first = otp_code(employee.email)
        employee.last_otp_sent_at = utcnow() - timedelta(minutes=2)
        db_session.commit()
        _request_otp(client, employee.email)
        second = otp_code(employee.email)

        if first != second:
            assert _verify(client, employee.email, first).status_code == 401
        assert _verify(client, employee.email, second).status_code == 200

    def test_verify_without_active_code(self, client, employee):
        assert _verify(client, employee.email, "123456").status_code == 400

    def test_expired_code_rejected(self, client, db_session, employee, otp_code):
        from pettycash.models import OTP

        _request_otp(client, employee.email)
        code = otp_code(employee.email)
        otp = db_session.query(OTP).filter_by(user_id=employee.id).one()
        otp.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()
        assert _verify(client, employee.email, code).status_code == 400


class TestOtpLockout:

    def test_lockout_after_max_wrong_codes(self, client, db_session, employee, otp_code):
        _request_otp(client, employee.email)
        code = otp_code(employee.email)

        for remaining in (4, 3, 2, 1):
            response = _verify(client, employee.email, "000000")
            assert response.status_code == 401
            assert response.get_json()["attempts_remaining"] == remaining

        response = _verify(client, employee.email, "000000")
        assert response.status_code == 423
        user = _reload(employee)
        assert user.account_locked_until is not None
        assert user.failed_otp_attempts == 5

        # Correct code while locked is still refused
        assert _verify(client, employee.email, code).status_code == 423
        # Both login paths are blocked
        assert _login(client, employee.email).status_code == 423
        assert _request_otp(client, employee.email).status_code == 423

    def test_fresh_code_after_lock_expires(self, client, db_session, employee, otp_code):
        _request_otp(client, employee.email)
        for _ in range(5):
            _verify(client, employee.email, "000000")
        assert _reload(employee).is_locked()

        user = _reload(employee)
        user.account_locked_until = utcnow() - timedelta(seconds=1)
        user.last_otp_sent_at = utcnow() - timedelta(minutes=2)
        db_session.commit()

        assert _request_otp(client, employee.email).status_code == 200
        assert _verify(client, employee.email, otp_code(employee.email)).status_code == 200

        user = _reload(employee)
        assert user.failed_otp_attempts == 0
        assert user.failed_password_attempts == 0
        assert user.account_locked_until is None

    def test_admin_unlock(self, client, db_session, employee, admin, headers):
        employee.account_locked_until = utcnow() + timedelta(minutes=15)
        employee.failed_otp_attempts = 5
        db_session.commit()

        response = client.patch(f"/api/users/{employee.id}/unlock", headers=headers(admin))
        assert response.status_code == 200
        assert _login(client, employee.email).status_code == 200


# =============================================================================
# SESSIONS / PASSWORD CHANGES
# =============================================================================


class TestSessions:

    def test_logout_revokes_token(self, client, employee, headers):
        h = headers(employee)
        assert client.post("/api/auth/logout", headers=h).status_code == 200
        assert client.get("/api/auth/profile", headers=h).status_code == 401

    def test_auditor_may_logout(self, client, auditor, headers):
        assert client.post("/api/auth/logout", headers=headers(auditor)).status_code == 200

    def test_missing_and_bogus_tokens(self, client):
        assert client.get("/api/auth/profile").status_code == 401
        assert client.get("/api/auth/profile", headers={"Authorization": "Bearer nope"}).status_code == 401

    def test_deactivated_user_token_rejected(self, client, db_session, employee, headers):
        h = headers(employee)
        employee.is_active = False
        db_session.commit()
        assert client.get("/api/auth/profile", headers=h).status_code == 401

    def test_update_profile(self, client, employee, headers):
        response = client.put("/api/auth/profile", json={"name": "Jane Q. Employee"}, headers=headers(employee))
        assert response.status_code == 200
        assert response.get_json()["data"]["name"] == "Jane Q. Employee"


class TestPasswordChanges:

    def test_change_password_keeps_current_session_only(self, client, employee, headers):
        current = headers(employee)
        other = headers(employee)

        response = client.put(
            "/api/auth/change-password",
            json={"current_password": TEST_PASSWORD, "new_password": NEW_PASSWORD},
            headers=current,
        )
        assert response.status_code == 200
        assert client.get("/api/auth/profile", headers=current).status_code == 200
        assert client.get("/api/auth/profile", headers=other).status_code == 401
        assert _login(client, employee.email, NEW_PASSWORD).status_code == 200

    def test_change_password_wrong_current(self, client, employee, headers):
        response = client.put(
            "/api/auth/change-password",
            json={"current_password": "nope", "new_password": NEW_PASSWORD},
            headers=headers(employee),
        )
        assert response.status_code == 401

    def test_weak_password_rejected(self, client, employee, headers):
        response = client.put(
            "/api/auth/change-password",
            json={"current_password": TEST_PASSWORD, "new_password": "short"},
            headers=headers(employee),
        )
        assert response.status_code == 400
        assert response.get_json()["error"] == "WEAK_PASSWORD"

    def test_reset_password_with_otp(self, client, employee, headers, otp_code):
        old_session = headers(employee)
        assert _request_otp(client, employee.email, "password_reset").status_code == 200

        response = client.post(
            "/api/auth/reset-password",
            json={"email": employee.email, "otp": otp_code(employee.email), "new_password": NEW_PASSWORD},
        )
        assert response.status_code == 200
        assert client.get("/api/auth/profile", headers=old_session).status_code == 401
        assert _login(client, employee.email, NEW_PASSWORD).status_code == 200

    def test_login_code_cannot_reset_password(self, client, employee, otp_code):
        _request_otp(client, employee.email)
        response = client.post(
            "/api/auth/reset-password",
            json={"email": employee.email, "otp": otp_code(employee.email), "new_password": NEW_PASSWORD},
        )
        assert response.status_code == 400
