# portal/testing/test_auth.py
# Tests for phone normalization, credential verification and the token service
# Covers hash/verify symmetry, token expiry, tampering and role checks
# RELEVANT FILES: ../auth.py, ../utils/phone.py, ../config.py

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import jwt
import pytest
from pydantic import ValidationError

from ..auth import AuthService, TokenService, check_phone, hash_phone, require_roles
from ..config import Settings
from ..exceptions import AuthorizationError, InvalidCredentials, TokenError
from ..schemas import Role
from ..utils.phone import is_valid_phone, normalize_phone
from .factories import make_user


class TestPhoneNormalization:
    """Normalization keeps the last ten digits of whatever was typed"""

    def test_strips_formatting(self):
        assert normalize_phone("(123) 456-7890") == "1234567890"

    def test_keeps_last_ten_digits(self):
        assert normalize_phone("+91 12345 67890") == "1234567890"

    def test_trims_whitespace(self):
        assert normalize_phone("  1234567890 ") == "1234567890"

    def test_empty_and_none(self):
        assert normalize_phone("") == ""
        assert normalize_phone(None) == ""
        assert normalize_phone("no digits") == ""

    def test_validity(self):
        assert is_valid_phone("123-456-7890")
        assert not is_valid_phone("12345")
        assert not is_valid_phone(None)


class TestPhoneHash:
    def test_hash_and_check_use_same_normalization(self):
        stored = hash_phone("+1 (123) 456-7890")
        assert check_phone("1234567890", stored)
        assert check_phone(" 123 456 7890 ", stored)

    def test_wrong_phone_rejected(self):
        stored = hash_phone("1234567890")
        assert not check_phone("1234567891", stored)

    def test_hash_is_salted(self):
        assert hash_phone("1234567890") != hash_phone("1234567890")

    def test_empty_input_rejected(self):
        stored = hash_phone("1234567890")
        assert not check_phone("", stored)
        assert not check_phone("1234567890", "")

    def test_malformed_stored_hash_rejected(self):
        assert not check_phone("1234567890", "not-a-bcrypt-hash")


class TestTokenService:
    def test_issue_and_verify_round_trip(self, tokens):
        token = tokens.issue("user-1", Role.ADMIN)
        identity = tokens.verify(token)

        assert identity.user_id == "user-1"
        assert identity.role == Role.ADMIN
        assert identity.is_admin
        assert identity.exp - identity.iat == 7 * 24 * 60 * 60

    def test_accepts_role_string(self, tokens):
        identity = tokens.verify(tokens.issue("user-2", "CLIENT"))
        assert identity.role == Role.CLIENT
        assert not identity.is_admin

    def test_expired_token_rejected(self, tokens, settings):
        past = datetime.now(timezone.utc) - timedelta(days=8)
        token = jwt.encode(
            {
                "role": "ADMIN",
                "sub": "user-1",
                "iat": int(past.timestamp()),
                "exp": int((past + timedelta(days=7)).timestamp()),
            },
            settings.jwt_secret.get_secret_value(),
            algorithm="HS256",
        )
        with pytest.raises(TokenError):
            tokens.verify(token)

    def test_tampered_token_rejected(self, tokens):
        token = tokens.issue("user-1", Role.CLIENT)
        header, payload, signature = token.split(".")
        middle = len(signature) // 2
        flipped = "A" if signature[middle] != "A" else "B"
        tampered = ".".join([header, payload, signature[:middle] + flipped + signature[middle + 1:]])

        with pytest.raises(TokenError):
            tokens.verify(tampered)

    def test_role_escalation_in_payload_rejected(self, tokens, settings):
        token = tokens.issue("user-1", Role.CLIENT)
        forged = jwt.encode(
            {**jwt.decode(token, options={"verify_signature": False}), "role": "ADMIN"},
            "some-other-secret-that-is-long-enough!!",
            algorithm="HS256",
        )
        with pytest.raises(TokenError):
            tokens.verify(forged)

    def test_unknown_role_rejected(self, tokens, settings):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "role": "SUPERUSER",
                "sub": "user-1",
                "iat": int(now.timestamp()),
                "exp": int((now + timedelta(hours=1)).timestamp()),
            },
            settings.jwt_secret.get_secret_value(),
            algorithm="HS256",
        )
        with pytest.raises(TokenError):
            tokens.verify(token)

    def test_missing_subject_rejected(self, tokens, settings):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"role": "ADMIN", "iat": int(now.timestamp()), "exp": int((now + timedelta(hours=1)).timestamp())},
            settings.jwt_secret.get_secret_value(),
            algorithm="HS256",
        )
        with pytest.raises(TokenError):
            tokens.verify(token)

    def test_garbage_rejected(self, tokens):
        with pytest.raises(TokenError):
            tokens.verify("not.a.token")


class TestSigningSecretConfig:
    """Startup must fail without a usable signing secret"""

    def test_missing_secret_fails(self, monkeypatch):
        monkeypatch.delenv("JWT_SECRET", raising=False)
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_short_secret_fails(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, jwt_secret="too-short")

    def test_environment_flags(self):
        settings = Settings(
            _env_file=None, jwt_secret="x" * 32, environment=" Production "
        )
        assert settings.is_production
        assert settings.token_ttl_seconds == 604800


class TestRequireRoles:
    @pytest.mark.asyncio
    async def test_allowed_role_passes(self, tokens):
        identity = tokens.verify(tokens.issue("admin-1", Role.ADMIN))
        checker = require_roles([Role.ADMIN])
        assert await checker(identity=identity) is identity

    @pytest.mark.asyncio
    async def test_other_role_forbidden(self, tokens):
        identity = tokens.verify(tokens.issue("client-1", Role.CLIENT))
        checker = require_roles([Role.ADMIN])
        with pytest.raises(AuthorizationError):
            await checker(identity=identity)


class TestAuthService:
    """Credential verification against stored users"""

    @pytest.mark.asyncio
    async def test_login_success_issues_token_with_stored_role(self, session, tokens):
        user = await make_user(session, Role.ADMIN, email="a@b.com", phone="1234567890")
        await session.commit()

        logged_in, token = await AuthService(session, tokens).login("a@b.com", "1234567890")

        assert logged_in.id == user.id
        identity = tokens.verify(token)
        assert identity.user_id == user.id
        assert identity.role == Role.ADMIN

    @pytest.mark.asyncio
    async def test_email_lookup_is_case_insensitive(self, session, tokens):
        await make_user(session, Role.CLIENT, email="owner@example.com")
        await session.commit()

        user = await AuthService(session, tokens).verify_credentials(
            "  Owner@Example.COM ", "123-456-7890"
        )
        assert user.email == "owner@example.com"

    @pytest.mark.asyncio
    async def test_wrong_phone_rejected(self, session, tokens):
        await make_user(session, email="a@b.com")
        await session.commit()

        with pytest.raises(InvalidCredentials):
            await AuthService(session, tokens).login("a@b.com", "0000000000")

    @pytest.mark.asyncio
    async def test_unknown_email_rejected(self, session, tokens):
        with pytest.raises(InvalidCredentials):
            await AuthService(session, tokens).login("nobody@example.com", "1234567890")

    @pytest.mark.asyncio
    async def test_inactive_user_rejected(self, session, tokens):
        await make_user(session, email="off@example.com", active=False)
        await session.commit()

        with pytest.raises(InvalidCredentials):
            await AuthService(session, tokens).login("off@example.com", "1234567890")


def test_identity_properties():
    token_service = TokenService(
        SimpleNamespace(
            jwt_secret=SimpleNamespace(get_secret_value=lambda: "s" * 32),
            jwt_algorithm="HS256",
            token_ttl_days=1,
        )
    )
    identity = token_service.verify(token_service.issue("u-9", Role.CLIENT))
    assert identity.sub == "u-9"
    assert identity.exp - identity.iat == 24 * 60 * 60
