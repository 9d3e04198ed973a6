# src/dispatch_core/signing/legacy.py
"""
Legacy symmetric HMAC signer (shared-key / S3 v2 style).

String to sign:

    METHOD
    Content-MD5
    Content-Type
    Date | Expires
    x-<tag>-header:value...        (lower-cased, sorted, one per line)
    /encoded/path?sub=resource     (sub-resources sorted by name)

HEADER mode adds `Date` and `Authorization: <scheme> <identity>:<signature>`;
QUERY mode produces a temporary URL with identity, expiry and signature
parameters instead.
"""

import base64
from datetime import datetime, timedelta
from email.utils import format_datetime
from typing import FrozenSet, Iterable, Optional

from ..core.credentials import Credentials
from ..core.exceptions import SigningError
from ..core.request import CanonicalRequest, percent_encode
from .base import RequestSigner, SigningMode, hmac_base64

S3_SUB_RESOURCES = frozenset({
    'acl', 'cors', 'delete', 'lifecycle', 'location', 'logging', 'notification',
    'partNumber', 'policy', 'requestPayment', 'tagging', 'torrent', 'uploadId',
    'uploads', 'versionId', 'versioning', 'versions', 'website',
    'response-cache-control', 'response-content-disposition',
    'response-content-encoding', 'response-content-language',
    'response-content-type', 'response-expires',
})


class LegacyHmacSigner(RequestSigner):
    """
    Shared-key HMAC signer.

    Args:
        scheme: Authorization scheme ("AWS", "SharedKeyLite")
        header_tag: Vendor header tag: `amz` -> `x-amz-*`, `ms` -> `x-ms-*`
        mode: HEADER or QUERY (temporary URL)
        algorithm: "sha1" (default) or "sha256"
        sub_resources: Query parameters that belong to the canonical resource
        compute_content_md5: Add Content-MD5 of the body when it is missing
        resource_prefix: Prefix of the canonical resource; "{identity}" is substituted
        decode_secret_base64: The secret is a base64-encoded key
        expires_in: Lifetime of QUERY mode URLs
        identity_param: Query parameter carrying the identity in QUERY mode
        logger: Structured logger

    Examples:
        >>> signer = LegacyHmacSigner()
        >>> signed = signer.sign(request, Credentials("AKID", "secret"))
        >>> signed.headers.get("Authorization")
        'AWS AKID:...'
    """

    def __init__(
        self,
        scheme: str = "AWS",
        header_tag: str = "amz",
        mode: SigningMode = SigningMode.HEADER,
        algorithm: str = "sha1",
        sub_resources: Iterable[str] = S3_SUB_RESOURCES,
        compute_content_md5: bool = False,
        resource_prefix: str = "",
        decode_secret_base64: bool = False,
        expires_in: timedelta = timedelta(minutes=15),
        identity_param: str = "AWSAccessKeyId",
        logger=None,
    ):
        super().__init__(logger)
        if algorithm not in ("sha1", "sha256"):
            raise ValueError(f"Unsupported HMAC algorithm: {algorithm}")
        self.scheme = scheme
        self.header_prefix = f"x-{header_tag}-"
        self.mode = SigningMode(mode)
        self.algorithm = algorithm
        self.sub_resources: FrozenSet[str] = frozenset(sub_resources)
        self.compute_content_md5 = compute_content_md5
        self.resource_prefix = resource_prefix
        self.decode_secret_base64 = decode_secret_base64
        self.expires_in = expires_in
        self.identity_param = identity_param

    # ==================== Каноникализация ====================

    def canonical_headers(self, request: CanonicalRequest) -> str:
        grouped = {}
        for name, value in request.headers:
            key = name.lower()
            if key.startswith(self.header_prefix):
                grouped.setdefault(key, []).append(" ".join(value.split()))
        return "".join(f"{key}:{','.join(grouped[key])}\n" for key in sorted(grouped))

    def canonical_resource(self, request: CanonicalRequest, identity: str) -> str:
        resource = self.resource_prefix.replace("{identity}", identity)
        resource += percent_encode(request.decoded_path)

        sub = sorted(
            (k, v) for k, v in request.query if k in self.sub_resources
        )
        if sub:
            resource += "?" + "&".join(f"{k}={v}" if v else k for k, v in sub)
        return resource

    def string_to_sign(
        self,
        request: CanonicalRequest,
        identity: str,
        date_or_expires: str,
    ) -> str:
        content_md5 = request.headers.get("Content-MD5", "")
        content_type = request.headers.get("Content-Type", "")
        # Дата в vendor заголовке заменяет строку Date
        if self.mode is SigningMode.HEADER and f"{self.header_prefix}date" in request.headers:
            date_or_expires = ""
        return (
            f"{request.method.value}\n"
            f"{content_md5}\n"
            f"{content_type}\n"
            f"{date_or_expires}\n"
            f"{self.canonical_headers(request)}"
            f"{self.canonical_resource(request, identity)}"
        )

    # ==================== Подпись ====================

    def _key(self, credentials: Credentials) -> bytes:
        if not self.decode_secret_base64:
            return credentials.secret.encode("utf-8")
        try:
            return base64.b64decode(credentials.secret, validate=True)
        except ValueError as e:
            raise SigningError("Secret is not valid base64") from e

    def _prepare(self, request: CanonicalRequest, credentials: Credentials) -> CanonicalRequest:
        request = request.with_entity_headers()
        if (
            self.compute_content_md5
            and request.body is not None
            and "Content-MD5" not in request.headers
        ):
            md5 = request.body.content_md5 or base64.b64encode(
                request.body.digest("md5")
            ).decode("ascii")
            request = request.with_header("Content-MD5", md5)
        if credentials.session_token and self.mode is SigningMode.HEADER:
            request = request.with_header(
                f"{self.header_prefix}security-token", credentials.session_token
            )
        return request

    def _sign(
        self,
        request: CanonicalRequest,
        credentials: Credentials,
        now: datetime,
    ) -> CanonicalRequest:
        request = self._prepare(request, credentials)
        key = self._key(credentials)

        if self.mode is SigningMode.QUERY:
            expires = str(int(now.timestamp() + self.expires_in.total_seconds()))
            for name in (self.identity_param, "Expires", "Signature"):
                request = request.without_query_param(name)
            canonical = request
            if credentials.session_token:
                token_name = f"{self.header_prefix}security-token"
                # Токен уходит в query, но подписывается как vendor заголовок
                canonical = request.with_header(token_name, credentials.session_token)
                request = request.replace_query_param(token_name, credentials.session_token)
            to_sign = self.string_to_sign(canonical, credentials.identity, expires)
            self._trace("string to sign", to_sign)
            signature = hmac_base64(key, to_sign, self.algorithm)
            return (
                request.without_header("Authorization")
                .with_query_param(self.identity_param, credentials.identity)
                .with_query_param("Expires", expires)
                .with_query_param("Signature", signature)
            )

        date = format_datetime(now, usegmt=True)
        request = request.with_header("Date", date)
        to_sign = self.string_to_sign(request, credentials.identity, date)
        self._trace("string to sign", to_sign)
        signature = hmac_base64(key, to_sign, self.algorithm)
        return request.with_header(
            "Authorization", f"{self.scheme} {credentials.identity}:{signature}"
        )


def shared_key_lite_signer(logger=None) -> LegacyHmacSigner:
    """Blob-storage SharedKeyLite flavour: `x-ms-*` headers, `/account/path?comp=`."""
    return LegacyHmacSigner(
        scheme="SharedKeyLite",
        header_tag="ms",
        sub_resources=("comp",),
        resource_prefix="/{identity}",
        decode_secret_base64=True,
        algorithm="sha256",
        logger=logger,
    )
