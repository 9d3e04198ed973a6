"""Тесты JWT подписчика."""

import base64
import hashlib
import hmac
import json
from datetime import timedelta
from urllib.parse import parse_qsl

import jwt
import pytest

from conftest import FIXED_NOW
from dispatch_core.core.credentials import Credentials
from dispatch_core.core.request import CanonicalRequest
from dispatch_core.signing.jwt import JWT_BEARER_GRANT, JWTSigner, TokenPlacement

CREDENTIALS = Credentials("svc@project.iam.example.com", "shared-secret")
TOKEN_REQUEST = CanonicalRequest("POST", "https://oauth2.example.com/token")


def _clock():
    return FIXED_NOW


def _decode(segment: str) -> dict:
    padded = segment + "=" * (-len(segment) % 4)
    return json.loads(base64.urlsafe_b64decode(padded).decode("utf-8"))


class TestToken:

    def test_three_url_safe_segments(self):
        token = JWTSigner(scope="compute.readonly").token(CREDENTIALS, FIXED_NOW)
        segments = token.split(".")

        assert len(segments) == 3
        for forbidden in "+/=":
            assert forbidden not in token

    def test_header_and_claims(self):
        signer = JWTSigner(scope="compute.readonly", audience="https://oauth2.example.com/token")
        header, claims, _ = signer.token(CREDENTIALS, FIXED_NOW).split(".")

        iat = int(FIXED_NOW.timestamp())
        assert _decode(header) == {"alg": "HS256", "typ": "JWT"}
        assert _decode(claims) == {
            "iss": "svc@project.iam.example.com",
            "scope": "compute.readonly",
            "aud": "https://oauth2.example.com/token",
            "exp": iat + 3600,
            "iat": iat,
        }

    def test_optional_claims_omitted(self):
        claims = JWTSigner().claims(CREDENTIALS, FIXED_NOW)
        assert set(claims) == {"iss", "exp", "iat"}

    def test_signature(self):
        token = JWTSigner().token(CREDENTIALS, FIXED_NOW)
        signing_input, signature = token.rsplit(".", 1)

        expected = hmac.new(b"shared-secret", signing_input.encode(), hashlib.sha256).digest()
        assert signature == base64.urlsafe_b64encode(expected).rstrip(b"=").decode()

    @pytest.mark.parametrize("algorithm,size", [("HS384", 48), ("HS512", 64)])
    def test_other_algorithms(self, algorithm, size):
        signature = JWTSigner(algorithm=algorithm).token(CREDENTIALS, FIXED_NOW).split(".")[2]
        assert len(base64.urlsafe_b64decode(signature + "=" * (-len(signature) % 4))) == size

    def test_unicode_claims(self):
        """Не-ASCII claims кодируются как UTF-8 и переживают декодирование."""
        signer = JWTSigner(extra_claims={"sub": "Жанна Д'Арк", "tenant": "東京"})
        claims = _decode(signer.token(CREDENTIALS, FIXED_NOW).split(".")[1])
        assert claims["sub"] == "Жанна Д'Арк"
        assert claims["tenant"] == "東京"

    @pytest.mark.parametrize("value", ["??>>>", "ÿÿÿ", "漢字!?/+", "~~~?" * 7, "\ufeff<>\u202e"])
    def test_adversarial_claims_stay_url_safe(self, value):
        signer = JWTSigner(scope=value, extra_claims={"sub": value, "note": value + "+/="})
        token = signer.token(CREDENTIALS, FIXED_NOW)

        assert len(token.split(".")) == 3
        for forbidden in "+/=":
            assert forbidden not in token
        assert _decode(token.split(".")[1])["sub"] == value

    def test_verifies_with_pyjwt(self):
        token = JWTSigner(scope="compute.readonly").token(CREDENTIALS, FIXED_NOW)

        claims = jwt.decode(
            token, "shared-secret", algorithms=["HS256"], options={"verify_exp": False}
        )
        assert claims["iss"] == "svc@project.iam.example.com"
        assert claims["scope"] == "compute.readonly"

    def test_custom_lifetime(self):
        claims = JWTSigner(lifetime=timedelta(minutes=5)).claims(CREDENTIALS, FIXED_NOW)
        assert claims["exp"] - claims["iat"] == 300


class TestValidation:

    def test_unknown_algorithm(self):
        with pytest.raises(ValueError, match="Unsupported JWT algorithm"):
            JWTSigner(algorithm="RS256")

    def test_reserved_claim(self):
        with pytest.raises(ValueError, match="exp"):
            JWTSigner(extra_claims={"exp": 0})

    def test_lifetime_positive(self):
        with pytest.raises(ValueError):
            JWTSigner(lifetime=timedelta(0))


class TestPlacement:

    def test_bearer_header(self):
        signed = JWTSigner().sign(TOKEN_REQUEST, CREDENTIALS, _clock)
        authorization = signed.headers.get("Authorization")
        assert authorization.startswith("Bearer ")
        assert authorization.count(".") == 2

    def test_assertion_form(self):
        signer = JWTSigner(placement=TokenPlacement.ASSERTION_FORM)
        signed = signer.sign(TOKEN_REQUEST, CREDENTIALS, _clock)

        form = dict(parse_qsl(signed.body.data.decode()))
        assert form["grant_type"] == JWT_BEARER_GRANT
        assert form["assertion"] == signer.token(CREDENTIALS, FIXED_NOW)
        assert signed.headers.get("Content-Type") == "application/x-www-form-urlencoded"
        assert "Authorization" not in signed.headers
