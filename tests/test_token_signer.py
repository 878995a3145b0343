"""Tests for TokenSigner: minting and verifying access/refresh JWTs."""
import dataclasses
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from app.core.security import TokenFailure, TokenSigner, TokenType


def make_signer(**overrides) -> TokenSigner:
    params = {
        "secret": "signer-test-secret",
        "audience": "urn:test:client",
        "issuer": "urn:test:authapi",
    }
    params.update(overrides)
    return TokenSigner(**params)


def fixed_clock(moment: datetime):
    return lambda: moment


class TestMint:
    def test_access_token_claims(self):
        signer = make_signer()
        minted = signer.mint(42, TokenType.ACCESS)

        claims = jwt.get_unverified_claims(minted.token)
        assert claims["sub"] == "42"
        assert claims["type"] == "access"
        assert claims["iss"] == "urn:test:authapi"
        assert claims["aud"] == "urn:test:client"
        assert "jti" not in claims
        assert minted.jti is None
        assert claims["exp"] - claims["iat"] == 15 * 60

    def test_refresh_token_carries_unique_jti(self):
        signer = make_signer()
        first = signer.mint(1, TokenType.REFRESH)
        second = signer.mint(1, TokenType.REFRESH)

        assert first.jti != second.jti
        assert str(uuid.UUID(first.jti)) == first.jti
        assert jwt.get_unverified_claims(first.token)["jti"] == first.jti

    def test_expires_at_matches_exp_claim(self):
        moment = datetime(2030, 1, 1, 12, 0, 0, 987654, tzinfo=timezone.utc)
        signer = make_signer(clock=fixed_clock(moment))
        minted = signer.mint(7, TokenType.REFRESH)

        claims = jwt.get_unverified_claims(minted.token)
        assert minted.expires_at == moment.replace(microsecond=0) + timedelta(days=7)
        assert int(minted.expires_at.timestamp()) == claims["exp"]

    def test_explicit_ttl_overrides_default(self):
        signer = make_signer()
        minted = signer.mint(7, TokenType.ACCESS, ttl=timedelta(seconds=30))

        claims = jwt.get_unverified_claims(minted.token)
        assert claims["exp"] - claims["iat"] == 30

    def test_extra_claims_are_embedded(self):
        signer = make_signer()
        minted = signer.mint(7, TokenType.ACCESS, extra_claims={"scope": "profile"})

        parsed = signer.parse(minted.token)
        assert parsed.ok
        assert parsed.claims.scope == "profile"

    @pytest.mark.parametrize("claim", ["sub", "type", "exp", "jti", "aud"])
    def test_extra_claims_cannot_override_reserved(self, claim):
        signer = make_signer()
        with pytest.raises(ValueError):
            signer.mint(7, TokenType.ACCESS, extra_claims={claim: "forged"})

    def test_signer_is_immutable(self):
        signer = make_signer()
        with pytest.raises(dataclasses.FrozenInstanceError):
            signer.secret = "other"

    def test_secret_not_in_repr(self):
        assert "signer-test-secret" not in repr(make_signer())


class TestParse:
    def test_round_trip_refresh(self):
        signer = make_signer()
        minted = signer.mint(9, TokenType.REFRESH)

        parsed = signer.parse(minted.token, expected_type=TokenType.REFRESH)
        assert parsed.ok
        assert parsed.failure is None
        assert parsed.claims.sub == "9"
        assert parsed.claims.jti == minted.jti

    @pytest.mark.parametrize("token", [None, "", "not-a-jwt", "a.b", 12345])
    def test_malformed(self, token):
        parsed = make_signer().parse(token)
        assert parsed.failure == TokenFailure.MALFORMED
        assert parsed.claims is None

    def test_foreign_secret_is_invalid_signature(self):
        forged = make_signer(secret="attacker-secret").mint(9, TokenType.REFRESH)

        parsed = make_signer().parse(forged.token)
        assert parsed.failure == TokenFailure.INVALID_SIGNATURE
        assert parsed.claims is None

    def test_tampered_payload_is_invalid_signature(self):
        signer = make_signer()
        header, _, signature = signer.mint(9, TokenType.ACCESS).token.split(".")
        other_payload = signer.mint(10, TokenType.ACCESS).token.split(".")[1]

        parsed = signer.parse(f"{header}.{other_payload}.{signature}")
        assert parsed.failure == TokenFailure.INVALID_SIGNATURE

    def test_expired(self):
        past = datetime.now(timezone.utc) - timedelta(days=1)
        minted = make_signer(clock=fixed_clock(past)).mint(9, TokenType.ACCESS)

        assert make_signer().parse(minted.token).failure == TokenFailure.EXPIRED

    def test_expiry_can_be_ignored(self):
        past = datetime.now(timezone.utc) - timedelta(days=30)
        minted = make_signer(clock=fixed_clock(past)).mint(9, TokenType.REFRESH)

        parsed = make_signer().parse(minted.token, expected_type=TokenType.REFRESH, verify_exp=False)
        assert parsed.ok
        assert parsed.claims.jti == minted.jti

    def test_wrong_audience(self):
        minted = make_signer(audience="urn:other:client").mint(9, TokenType.ACCESS)
        assert make_signer().parse(minted.token).failure == TokenFailure.INVALID_CLAIMS

    def test_wrong_issuer(self):
        minted = make_signer(issuer="urn:other:issuer").mint(9, TokenType.ACCESS)
        assert make_signer().parse(minted.token).failure == TokenFailure.INVALID_CLAIMS

    def test_access_token_rejected_where_refresh_expected(self):
        signer = make_signer()
        access = signer.mint(9, TokenType.ACCESS)

        assert signer.parse(access.token, expected_type=TokenType.REFRESH).failure == TokenFailure.WRONG_TYPE

    def test_refresh_token_rejected_where_access_expected(self):
        signer = make_signer()
        refresh = signer.mint(9, TokenType.REFRESH)

        assert signer.parse(refresh.token, expected_type=TokenType.ACCESS).failure == TokenFailure.WRONG_TYPE

    def test_refresh_without_jti_is_invalid_claims(self):
        signer = make_signer()
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "iss": signer.issuer,
                "aud": signer.audience,
                "iat": now,
                "exp": now + timedelta(minutes=5),
                "sub": "9",
                "type": "refresh",
            },
            signer.secret,
            algorithm=signer.algorithm,
        )

        assert signer.parse(token).failure == TokenFailure.INVALID_CLAIMS
