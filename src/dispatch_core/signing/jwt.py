"""
JWT-style bearer token signer on top of PyJWT.

Token = base64url(header) "." base64url(claims) "." base64url(HMAC(header.claims))
PyJWT кодирует все сегменты base64url без паддинга, поэтому токен
безопасен для URL: в нём не бывает `+`, `/` и `=`.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Mapping, Optional

import jwt

from ..core.credentials import Credentials
from ..core.request import Body, CanonicalRequest
from .base import RequestSigner

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

ALGORITHMS = ("HS256", "HS384", "HS512")

RESERVED_CLAIMS = frozenset({"iss", "scope", "aud", "exp", "iat"})


class TokenPlacement(str, Enum):
    """Куда кладётся токен."""
    BEARER_HEADER = "bearer_header"
    ASSERTION_FORM = "assertion_form"


class JWTSigner(RequestSigner):
    """
    Подписчик bearer токеном.

    Args:
        scope: Значение claim `scope` (опционально)
        audience: Значение claim `aud` (опционально)
        lifetime: exp - iat
        algorithm: HS256 | HS384 | HS512
        extra_claims: Дополнительные claims (зарезервированные перезаписать нельзя)
        placement: BEARER_HEADER или ASSERTION_FORM
        logger: Структурный логгер

    Examples:
        >>> signer = JWTSigner(scope="compute.readonly", audience="https://oauth2.example.com/token")
        >>> token = signer.token(credentials, now)
        >>> token.count(".")
        2
    """

    def __init__(
        self,
        scope: Optional[str] = None,
        audience: Optional[str] = None,
        lifetime: timedelta = timedelta(hours=1),
        algorithm: str = "HS256",
        extra_claims: Optional[Mapping[str, Any]] = None,
        placement: TokenPlacement = TokenPlacement.BEARER_HEADER,
        logger=None,
    ):
        super().__init__(logger)
        if algorithm not in ALGORITHMS:
            raise ValueError(
                f"Unsupported JWT algorithm: {algorithm}. Available: {', '.join(ALGORITHMS)}"
            )
        if lifetime <= timedelta(0):
            raise ValueError("lifetime must be positive")
        clashing = RESERVED_CLAIMS.intersection(extra_claims or {})
        if clashing:
            raise ValueError(f"extra_claims must not override: {', '.join(sorted(clashing))}")
        self.scope = scope
        self.audience = audience
        self.lifetime = lifetime
        self.algorithm = algorithm
        self.extra_claims = dict(extra_claims or {})
        self.placement = TokenPlacement(placement)

    def header(self) -> Dict[str, str]:
        return {"alg": self.algorithm, "typ": "JWT"}

    def claims(self, credentials: Credentials, now: datetime) -> Dict[str, Any]:
        issued_at = int(now.timestamp())
        claims: Dict[str, Any] = {"iss": credentials.identity}
        if self.scope is not None:
            claims["scope"] = self.scope
        if self.audience is not None:
            claims["aud"] = self.audience
        claims["exp"] = issued_at + int(self.lifetime.total_seconds())
        claims["iat"] = issued_at
        claims.update(self.extra_claims)
        return claims

    def token(self, credentials: Credentials, now: datetime) -> str:
        """Собрать и подписать токен."""
        token = jwt.encode(
            self.claims(credentials, now),
            credentials.secret,
            algorithm=self.algorithm,
            headers=self.header(),
        )
        self._trace("signing input", token.rsplit(".", 1)[0])
        return token

    def _sign(
        self,
        request: CanonicalRequest,
        credentials: Credentials,
        now: datetime,
    ) -> CanonicalRequest:
        token = self.token(credentials, now)
        if self.placement is TokenPlacement.ASSERTION_FORM:
            body = Body.of_form([("grant_type", JWT_BEARER_GRANT), ("assertion", token)])
            return (
                request.without_header("Authorization")
                .without_header("Content-Length")
                .with_header("Content-Type", body.content_type)
                .with_body(body)
            )
        return request.with_header("Authorization", f"Bearer {token}")
