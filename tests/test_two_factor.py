import pyotp
import pytest

from tenant_auth.config import settings
from tenant_auth.core.exceptions import (
    ConflictException,
    RateLimitException,
    ValidationException,
)
from tenant_auth.models.audit_log import AuditAction, AuditLog
from tenant_auth.services.two_factor_service import (
    BACKUP_CODE_COUNT,
    TwoFactorService,
    generate_backup_codes,
    normalize_backup_code,
)
from tests.conftest import TEST_PASSWORD, enable_two_factor


def _wrong_code(secret: str) -> str:
    current = pyotp.TOTP(secret).now()
    return "000000" if current != "000000" else "111111"


class TestBackupCodeGeneration:
    def test_format(self):
        codes = generate_backup_codes()

        assert len(codes) == BACKUP_CODE_COUNT
        for code in codes:
            assert len(code) == 9
            assert code[4] == "-"
            assert code.replace("-", "").isalnum()

    def test_codes_are_distinct(self):
        assert len(set(generate_backup_codes(50))) == 50

    def test_normalize(self):
        assert normalize_backup_code(" ab12-cd34 ") == "AB12CD34"
        assert normalize_backup_code("AB12 CD34") == "AB12CD34"


class TestTwoFactorSetup:
    def test_setup_returns_provisioning_material(self, db_session, cache, owner):
        setup = TwoFactorService(db_session, cache).setup(owner)

        assert setup["provisioning_uri"].startswith("otpauth://totp/")
        assert len(setup["backup_codes"]) == BACKUP_CODE_COUNT
        # Nothing stored until enable()
        assert owner.two_factor_enabled is False
        assert owner.two_factor_secret is None

    def test_enable_stores_encrypted_secret(self, db_session, cache, owner):
        secret, codes = enable_two_factor(db_session, cache, owner)

        assert owner.two_factor_enabled is True
        assert owner.two_factor_enabled_at is not None
        assert owner.two_factor_secret != secret
        assert len(owner.two_factor_backup_codes) == BACKUP_CODE_COUNT
        assert not any(normalize_backup_code(c) in owner.two_factor_backup_codes for c in codes)

    def test_enable_rejects_wrong_code(self, db_session, cache, owner):
        service = TwoFactorService(db_session, cache)
        setup = service.setup(owner)

        with pytest.raises(ValidationException, match="Invalid verification code"):
            service.enable(owner, setup["secret"], _wrong_code(setup["secret"]), setup["backup_codes"])
        assert owner.two_factor_enabled is False

    def test_enable_requires_full_backup_code_set(self, db_session, cache, owner):
        service = TwoFactorService(db_session, cache)
        setup = service.setup(owner)

        with pytest.raises(ValidationException):
            service.enable(owner, setup["secret"], pyotp.TOTP(setup["secret"]).now(), setup["backup_codes"][:3])

    def test_setup_when_enabled_conflicts(self, db_session, cache, owner):
        enable_two_factor(db_session, cache, owner)

        with pytest.raises(ConflictException):
            TwoFactorService(db_session, cache).setup(owner)

    def test_disable_requires_password(self, db_session, cache, owner):
        enable_two_factor(db_session, cache, owner)
        service = TwoFactorService(db_session, cache)

        with pytest.raises(ValidationException, match="Invalid password"):
            service.disable(owner, "not-the-password")

        service.disable(owner, TEST_PASSWORD)
        assert owner.two_factor_enabled is False
        assert owner.two_factor_secret is None
        assert owner.two_factor_backup_codes is None

    def test_disable_when_not_enabled(self, db_session, cache, owner):
        with pytest.raises(ValidationException):
            TwoFactorService(db_session, cache).disable(owner, TEST_PASSWORD)


class TestTwoFactorVerification:
    def test_totp_code(self, db_session, cache, owner):
        secret, _ = enable_two_factor(db_session, cache, owner)
        service = TwoFactorService(db_session, cache)

        assert service.verify_totp(owner, pyotp.TOTP(secret).now())
        assert not service.verify_totp(owner, _wrong_code(secret))

    def test_backup_code_is_single_use(self, db_session, cache, owner):
        _, codes = enable_two_factor(db_session, cache, owner)
        service = TwoFactorService(db_session, cache)

        assert service.verify_code(owner, codes[0]) == "backup_code"
        assert service.remaining_backup_codes(owner) == BACKUP_CODE_COUNT - 1
        assert service.verify_code(owner, codes[0]) is None

    def test_backup_code_accepts_loose_formatting(self, db_session, cache, owner):
        _, codes = enable_two_factor(db_session, cache, owner)

        assert TwoFactorService(db_session, cache).verify_backup_code(owner, codes[1].lower().replace("-", " "))

    def test_totp_only_rejects_backup_code(self, db_session, cache, owner):
        _, codes = enable_two_factor(db_session, cache, owner)
        service = TwoFactorService(db_session, cache)

        assert not service.verify_totp(owner, codes[0])
        assert service.remaining_backup_codes(owner) == BACKUP_CODE_COUNT

    def test_rate_limit_after_repeated_failures(self, db_session, cache, owner):
        secret, _ = enable_two_factor(db_session, cache, owner)
        service = TwoFactorService(db_session, cache)

        for _ in range(settings.MAX_2FA_ATTEMPTS):
            assert service.verify_code(owner, _wrong_code(secret)) is None

        # Even a correct code is refused while locked out
        with pytest.raises(RateLimitException):
            service.verify_code(owner, pyotp.TOTP(secret).now())

    def test_success_resets_attempt_counter(self, db_session, cache, owner):
        secret, _ = enable_two_factor(db_session, cache, owner)
        service = TwoFactorService(db_session, cache)

        for _ in range(settings.MAX_2FA_ATTEMPTS - 1):
            service.verify_code(owner, _wrong_code(secret))
        assert service.verify_code(owner, pyotp.TOTP(secret).now()) == "totp"

        assert cache.get(f"2fa_attempts:{owner.tenant_id}:{owner.id}") is None

    def test_regenerate_backup_codes(self, db_session, cache, owner):
        secret, old_codes = enable_two_factor(db_session, cache, owner)
        service = TwoFactorService(db_session, cache)

        with pytest.raises(ValidationException, match="Invalid verification code"):
            service.regenerate_backup_codes(owner, _wrong_code(secret))

        new_codes = service.regenerate_backup_codes(owner, pyotp.TOTP(secret).now())
        assert len(new_codes) == BACKUP_CODE_COUNT
        assert service.verify_code(owner, old_codes[0]) is None
        assert service.verify_code(owner, new_codes[0]) == "backup_code"


class TestTrustedDevices:
    def test_remembered_device_is_trusted(self, db_session, cache, owner):
        service = TwoFactorService(db_session, cache)
        token = service.remember_device(owner, "fp-1")

        assert service.is_device_trusted(owner, "fp-1", token)
        assert not service.is_device_trusted(owner, "fp-2", token)
        assert not service.is_device_trusted(owner, "fp-1", "forged")
        assert not service.is_device_trusted(owner, "fp-1", None)

    def test_disable_forgets_devices(self, db_session, cache, owner):
        enable_two_factor(db_session, cache, owner)
        service = TwoFactorService(db_session, cache)
        token = service.remember_device(owner, "fp-1")

        service.disable(owner, TEST_PASSWORD)

        assert not service.is_device_trusted(owner, "fp-1", token)


class TestTwoFactorRoutes:
    def test_setup_and_enable(self, client, owner_headers):
        setup = client.post("/api/2fa/setup", headers=owner_headers)
        assert setup.status_code == 200
        body = setup.json()

        enabled = client.post(
            "/api/2fa/enable",
            headers=owner_headers,
            json={
                "secret": body["secret"],
                "code": pyotp.TOTP(body["secret"]).now(),
                "backup_codes": body["backup_codes"],
            },
        )
        assert enabled.status_code == 200

        status = client.get("/api/2fa/status", headers=owner_headers).json()
        assert status["enabled"] is True
        assert status["backup_codes_remaining"] == BACKUP_CODE_COUNT

    def test_status_when_disabled(self, client, member_headers):
        response = client.get("/api/2fa/status", headers=member_headers)

        assert response.status_code == 200
        assert response.json() == {"enabled": False, "enabled_at": None, "backup_codes_remaining": 0}

    def test_verify_reports_method(self, client, db_session, cache, owner, owner_headers):
        _, codes = enable_two_factor(db_session, cache, owner)

        response = client.post("/api/2fa/verify", headers=owner_headers, json={"code": codes[0]})

        assert response.status_code == 200
        assert response.json() == {"valid": True, "method": "backup_code"}

    def test_verify_rate_limited(self, client, db_session, cache, owner, owner_headers):
        secret, _ = enable_two_factor(db_session, cache, owner)

        for _ in range(settings.MAX_2FA_ATTEMPTS):
            client.post("/api/2fa/verify", headers=owner_headers, json={"code": _wrong_code(secret)})
        response = client.post("/api/2fa/verify", headers=owner_headers, json={"code": pyotp.TOTP(secret).now()})

        assert response.status_code == 429

    def test_disable_wrong_password(self, client, db_session, cache, owner, owner_headers):
        enable_two_factor(db_session, cache, owner)

        response = client.post("/api/2fa/disable", headers=owner_headers, json={"password": "nope"})

        assert response.status_code == 400
        assert "www-authenticate" not in response.headers

    def test_regenerate_with_wrong_code(self, client, db_session, cache, owner, owner_headers):
        secret, _ = enable_two_factor(db_session, cache, owner)

        response = client.post("/api/2fa/backup-codes", headers=owner_headers, json={"code": _wrong_code(secret)})

        assert response.status_code == 400
        assert "www-authenticate" not in response.headers
        failed = (
            db_session.query(AuditLog)
            .filter(AuditLog.action == AuditAction.TWO_FACTOR_FAILED, AuditLog.user_id == owner.id)
            .count()
        )
        assert failed == 1

    def test_regenerate_when_disabled_is_not_a_failed_attempt(self, client, db_session, owner, owner_headers):
        response = client.post("/api/2fa/backup-codes", headers=owner_headers, json={"code": "123456"})

        assert response.status_code == 400
        assert db_session.query(AuditLog).filter(AuditLog.action == AuditAction.TWO_FACTOR_FAILED).count() == 0

    def test_requires_authentication(self, client):
        assert client.post("/api/2fa/setup").status_code == 401
