# src/dispatch_core/signing/scoped.py
"""
Scoped symmetric signer (v4 style).

Ключ подписи выводится цепочкой HMAC-SHA256 в фиксированном порядке:

    kDate    = HMAC("AWS4" + secret, yyyymmdd)
    kRegion  = HMAC(kDate, region)
    kService = HMAC(kRegion, service)
    kSigning = HMAC(kService, "aws4_request")

Каноническая строка запроса:

    METHOD
    /escaped/path
    sorted=strictly&encoded=query
    lower-cased:trimmed header values (sorted)

    signed;header;names
    hex(sha256(payload))

Строка для подписи: алгоритм, timestamp, credential scope,
hex(sha256(canonical request)).
"""

import re
from datetime import datetime, timedelta
from typing import IO, Callable, Iterable, Iterator, List, Optional, Tuple, Union

from ..core.credentials import Credentials
from ..core.exceptions import SigningError
from ..core.request import Body, CanonicalRequest, percent_encode, strict_encode
from .base import RequestSigner, SigningMode, hmac_digest, sha256_hex

ALGORITHM = "AWS4-HMAC-SHA256"
TERMINATOR = "aws4_request"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"
EMPTY_PAYLOAD_HASH = sha256_hex(b"")

CONTENT_SHA256_HEADER = "x-amz-content-sha256"
DATE_HEADER = "X-Amz-Date"
TOKEN_HEADER = "X-Amz-Security-Token"
SIGNATURE_PARAM = "X-Amz-Signature"

# Потоковая загрузка (Content-Encoding: aws-chunked)
STREAMING_PAYLOAD = "STREAMING-AWS4-HMAC-SHA256-PAYLOAD"
CHUNK_ALGORITHM = "AWS4-HMAC-SHA256-PAYLOAD"
CHUNKED_ENCODING = "aws-chunked"
DECODED_LENGTH_HEADER = "x-amz-decoded-content-length"
CHUNK_SIGNATURE = ";chunk-signature="
MIN_CHUNK_SIZE = 8 * 1024
DEFAULT_CHUNK_SIZE = 64 * 1024

# Подписываем всегда эти заголовки (если есть) плюс все x-amz-*
SIGNED_STANDARD_HEADERS = frozenset({
    "host", "content-type", "content-md5", "content-length", "range", "date",
})

# Максимум для pre-signed URL - 7 дней
MAX_PRESIGN_EXPIRES = timedelta(days=7)

_REGION_RE = re.compile(r"^[a-z]{2}(?:-gov)?-[a-z]+-\d+$")

RegionResolver = Callable[[str], str]


def region_from_host(host: str, default: str = "us-east-1") -> str:
    """
    Регион из имени хоста (`ec2.eu-west-1.amazonaws.com` -> `eu-west-1`).

    Examples:
        >>> region_from_host("s3.us-west-2.amazonaws.com")
        'us-west-2'
        >>> region_from_host("iam.amazonaws.com")
        'us-east-1'
    """
    for label in host.split("."):
        if _REGION_RE.match(label):
            return label
    return default


def signing_key(secret: str, datestamp: str, region: str, service: str) -> bytes:
    """Вывести ключ подписи для (дата, регион, сервис)."""
    k_date = hmac_digest("AWS4" + secret, datestamp)
    k_region = hmac_digest(k_date, region)
    k_service = hmac_digest(k_region, service)
    return hmac_digest(k_service, TERMINATOR)


class ScopedHmacSigner(RequestSigner):
    """
    v4-style signer.

    Args:
        service: Имя сервиса в credential scope ("ec2", "s3", "iam")
        region: Фиксированный регион или функция host -> region
        mode: HEADER (Authorization) или QUERY (pre-signed URL)
        sign_content_sha256_header: Добавить и подписать x-amz-content-sha256
        unsigned_payload: Не хешировать тело (только вместе с заголовком sha256)
        expires_in: Время жизни pre-signed URL
        logger: Структурный логгер

    Examples:
        >>> signer = ScopedHmacSigner("ec2", region="eu-west-1")
        >>> signed = signer.sign(request, credentials)
        >>> signed.headers.get("Authorization").startswith("AWS4-HMAC-SHA256 Credential=")
        True
    """

    signed_standard_headers = SIGNED_STANDARD_HEADERS

    def __init__(
        self,
        service: str,
        region: Union[str, RegionResolver, None] = None,
        mode: SigningMode = SigningMode.HEADER,
        sign_content_sha256_header: bool = False,
        unsigned_payload: bool = False,
        expires_in: timedelta = timedelta(minutes=15),
        logger=None,
    ):
        super().__init__(logger)
        if not service:
            raise ValueError("service is required")
        if expires_in <= timedelta(0) or expires_in > MAX_PRESIGN_EXPIRES:
            raise ValueError("expires_in must be within (0, 7 days]")
        self.service = service
        self._region = region if region is not None else region_from_host
        self.mode = SigningMode(mode)
        self.sign_content_sha256_header = sign_content_sha256_header
        self.unsigned_payload = unsigned_payload
        self.expires_in = expires_in

    def region_for(self, request: CanonicalRequest) -> str:
        if callable(self._region):
            return self._region(request.host)
        return self._region

    # ==================== Каноникализация ====================

    @staticmethod
    def canonical_uri(request: CanonicalRequest) -> str:
        return percent_encode(request.decoded_path, safe="/")

    @staticmethod
    def canonical_query(pairs: Iterable[Tuple[str, str]]) -> str:
        encoded = sorted((strict_encode(k), strict_encode(v)) for k, v in pairs)
        return "&".join(f"{k}={v}" for k, v in encoded)

    def _signed_header_map(self, request: CanonicalRequest) -> List[Tuple[str, str]]:
        grouped = {"host": [request.host_header]}
        for name, value in request.headers:
            key = name.lower()
            if key == "host":
                continue
            if key in self.signed_standard_headers or key.startswith("x-amz-"):
                grouped.setdefault(key, []).append(" ".join(value.split()))
        return sorted((key, ",".join(values)) for key, values in grouped.items())

    def canonical_request(
        self,
        request: CanonicalRequest,
        query: Iterable[Tuple[str, str]],
        signed: List[Tuple[str, str]],
        payload_hash: str,
    ) -> str:
        headers = "".join(f"{key}:{value}\n" for key, value in signed)
        signed_names = ";".join(key for key, _ in signed)
        return "\n".join([
            request.method.value,
            self.canonical_uri(request),
            self.canonical_query(query),
            headers,
            signed_names,
            payload_hash,
        ])

    def payload_hash(self, request: CanonicalRequest) -> str:
        preset = request.headers.get(CONTENT_SHA256_HEADER)
        if preset:
            return preset
        if self.unsigned_payload:
            return UNSIGNED_PAYLOAD
        if request.body is None:
            return EMPTY_PAYLOAD_HASH
        return request.body.digest("sha256").hex()

    @staticmethod
    def string_to_sign(timestamp: str, scope: str, canonical_request: str) -> str:
        return "\n".join([ALGORITHM, timestamp, scope, sha256_hex(canonical_request)])

    # ==================== Подпись ====================

    def signing_context(
        self,
        request: CanonicalRequest,
        credentials: Credentials,
        now: datetime,
    ) -> Tuple[str, str, bytes]:
        """(timestamp, credential scope, ключ подписи) для момента `now`."""
        datestamp = now.strftime("%Y%m%d")
        region = self.region_for(request)
        scope = f"{datestamp}/{region}/{self.service}/{TERMINATOR}"
        key = signing_key(credentials.secret, datestamp, region, self.service)
        return now.strftime("%Y%m%dT%H%M%SZ"), scope, key

    def _sign(
        self,
        request: CanonicalRequest,
        credentials: Credentials,
        now: datetime,
    ) -> CanonicalRequest:
        if request.has_query_param(SIGNATURE_PARAM):
            # Уже pre-signed URL: второй подписи не добавляем
            return request.without_header("Authorization")

        if self.unsigned_payload and not self.sign_content_sha256_header:
            raise SigningError("unsigned_payload requires the content sha256 header")

        timestamp, scope, key = self.signing_context(request, credentials, now)

        request = request.with_entity_headers()
        if self.mode is SigningMode.QUERY:
            return self._presign(request, credentials, timestamp, scope, key)

        request = self._with_auth_headers(request, credentials, timestamp)
        payload_hash = self.payload_hash(request)
        if self.sign_content_sha256_header:
            request = request.with_header(CONTENT_SHA256_HEADER, payload_hash)

        signed, _ = self._authorize(request, credentials, timestamp, scope, key, payload_hash)
        return signed

    @staticmethod
    def _with_auth_headers(
        request: CanonicalRequest,
        credentials: Credentials,
        timestamp: str,
    ) -> CanonicalRequest:
        request = (
            request.without_header("Authorization")
            .with_header("Host", request.host_header)
            .with_header(DATE_HEADER, timestamp)
        )
        if credentials.session_token:
            request = request.with_header(TOKEN_HEADER, credentials.session_token)
        return request

    def _authorize(
        self,
        request: CanonicalRequest,
        credentials: Credentials,
        timestamp: str,
        scope: str,
        key: bytes,
        payload_hash: str,
    ) -> Tuple[CanonicalRequest, str]:
        """Подписать заголовки; вернуть запрос с Authorization и саму подпись."""
        signed = self._signed_header_map(request)
        canonical = self.canonical_request(request, request.query, signed, payload_hash)
        to_sign = self.string_to_sign(timestamp, scope, canonical)
        self._trace("canonical request", canonical)
        self._trace("string to sign", to_sign)
        signature = hmac_digest(key, to_sign).hex()

        authorization = (
            f"{ALGORITHM} Credential={credentials.identity}/{scope}, "
            f"SignedHeaders={';'.join(name for name, _ in signed)}, "
            f"Signature={signature}"
        )
        return request.with_header("Authorization", authorization), signature

    def _presign(
        self,
        request: CanonicalRequest,
        credentials: Credentials,
        timestamp: str,
        scope: str,
        key: bytes,
    ) -> CanonicalRequest:
        request = request.without_header("Authorization")
        signed = [("host", request.host_header)]
        signed_names = "host"

        params = [
            ("X-Amz-Algorithm", ALGORITHM),
            ("X-Amz-Credential", f"{credentials.identity}/{scope}"),
            ("X-Amz-Date", timestamp),
            ("X-Amz-Expires", str(int(self.expires_in.total_seconds()))),
            ("X-Amz-SignedHeaders", signed_names),
        ]
        if credentials.session_token:
            params.append((TOKEN_HEADER, credentials.session_token))
        for name, value in params:
            request = request.replace_query_param(name, value)

        canonical = self.canonical_request(request, request.query, signed, UNSIGNED_PAYLOAD)
        to_sign = self.string_to_sign(timestamp, scope, canonical)
        self._trace("canonical request", canonical)
        signature = hmac_digest(key, to_sign).hex()
        return request.with_query_param(SIGNATURE_PARAM, signature)


def s3_signer(region: Union[str, RegionResolver, None] = None, mode: SigningMode = SigningMode.HEADER,
              logger=None) -> ScopedHmacSigner:
    """Storage flavour: payload hash travels in x-amz-content-sha256."""
    return ScopedHmacSigner(
        "s3",
        region=region,
        mode=mode,
        sign_content_sha256_header=True,
        logger=logger,
    )


def chunked_content_length(length: int, chunk_size: int) -> int:
    """
    Длина тела aws-chunked на проводе.

    Каждый блок: hex(размер) ";chunk-signature=" подпись CRLF данные CRLF,
    в конце пустой блок.

    Examples:
        >>> chunked_content_length(66560, 64 * 1024)
        66824
    """
    if length <= 0:
        raise ValueError("length must be positive")

    def framed(size: int) -> int:
        return len(f"{size:x}") + len(CHUNK_SIGNATURE) + 64 + 2 + size + 2

    full, rest = divmod(length, chunk_size)
    return full * framed(chunk_size) + (framed(rest) if rest else 0) + framed(0)


class ChunkedPayload:
    """
    Подписанное тело aws-chunked.

    Исходное тело читается лениво блоками по `chunk_size`; подпись
    каждого блока зависит от подписи предыдущего (первого - от seed
    подписи заголовков). Объект читается один раз: через `read()`
    (так его читает http.client) или итерацией.

    Args:
        source: Байты или файлоподобный объект с исходным телом
        length: Длина исходного тела (x-amz-decoded-content-length)
        chunk_size: Размер блока
        key: Ключ подписи
        timestamp: X-Amz-Date запроса
        scope: Credential scope запроса
        seed_signature: Подпись заголовков
    """

    def __init__(
        self,
        source: Union[bytes, IO[bytes]],
        length: int,
        chunk_size: int,
        key: bytes,
        timestamp: str,
        scope: str,
        seed_signature: str,
    ):
        self.source = source
        self.length = length
        self.chunk_size = chunk_size
        self.key = key
        self.timestamp = timestamp
        self.scope = scope
        self.previous_signature = seed_signature
        self._frames = self._generate()
        self._buffer = b""

    def __len__(self) -> int:
        return chunked_content_length(self.length, self.chunk_size)

    def __iter__(self) -> Iterator[bytes]:
        if self._buffer:
            buffered, self._buffer = self._buffer, b""
            yield buffered
        yield from self._frames

    def read(self, size: Optional[int] = -1) -> bytes:
        if size is None or size < 0:
            return b"".join(self)
        while len(self._buffer) < size:
            frame = next(self._frames, None)
            if frame is None:
                break
            self._buffer += frame
        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def sign_chunk(self, data: bytes) -> str:
        to_sign = "\n".join([
            CHUNK_ALGORITHM,
            self.timestamp,
            self.scope,
            self.previous_signature,
            EMPTY_PAYLOAD_HASH,
            sha256_hex(data),
        ])
        self.previous_signature = hmac_digest(self.key, to_sign).hex()
        return self.previous_signature

    def frame(self, data: bytes) -> bytes:
        header = f"{len(data):x}{CHUNK_SIGNATURE}{self.sign_chunk(data)}\r\n"
        return header.encode("ascii") + data + b"\r\n"

    def _generate(self) -> Iterator[bytes]:
        for block in self._blocks():
            yield self.frame(block)
        yield self.frame(b"")

    def _blocks(self) -> Iterator[bytes]:
        if isinstance(self.source, bytes):
            for offset in range(0, self.length, self.chunk_size):
                yield self.source[offset:offset + self.chunk_size]
            return

        remaining = self.length
        while remaining > 0:
            wanted = min(self.chunk_size, remaining)
            block = _read_block(self.source, wanted)
            if len(block) < wanted:
                raise SigningError(
                    f"Stream body ended {remaining - len(block)} bytes before its declared length"
                )
            remaining -= wanted
            yield block


def _read_block(stream: IO[bytes], size: int) -> bytes:
    parts = []
    while size > 0:
        part = stream.read(size)
        if not part:
            break
        parts.append(part)
        size -= len(part)
    return b"".join(parts)


class ChunkedUploadSigner(ScopedHmacSigner):
    """
    v4 подпись потоковой загрузки (Content-Encoding: aws-chunked).

    Заголовки подписываются с x-amz-content-sha256 =
    STREAMING-AWS4-HMAC-SHA256-PAYLOAD (seed подпись), тело режется
    на блоки и каждый блок подписывается по цепочке от seed подписи.
    Тело заранее не хешируется, поэтому неперематываемый поток
    подписывается без буферизации. Длина тела должна быть известна.

    Args:
        service: Имя сервиса в credential scope
        region: Фиксированный регион или функция host -> region
        chunk_size: Размер блока (не меньше 8 KiB)
        logger: Структурный логгер

    Examples:
        >>> signer = ChunkedUploadSigner(region="us-east-1")
        >>> signed = signer.sign(put_request, credentials)
        >>> signed.headers.get("Content-Encoding")
        'aws-chunked'
    """

    signed_standard_headers = SIGNED_STANDARD_HEADERS | {"content-encoding"}

    def __init__(
        self,
        service: str = "s3",
        region: Union[str, RegionResolver, None] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        logger=None,
    ):
        super().__init__(service, region=region, sign_content_sha256_header=True, logger=logger)
        if chunk_size < MIN_CHUNK_SIZE:
            raise ValueError(f"chunk_size must be at least {MIN_CHUNK_SIZE} bytes")
        self.chunk_size = chunk_size

    def _sign(
        self,
        request: CanonicalRequest,
        credentials: Credentials,
        now: datetime,
    ) -> CanonicalRequest:
        body = request.body
        if body is None or not body.length:
            raise SigningError("Chunked upload requires a non-empty body of known length")

        timestamp, scope, key = self.signing_context(request, credentials, now)
        encoding = ",".join([CHUNKED_ENCODING] + request.headers.get_all("Content-Encoding"))
        request = (
            request.with_entity_headers()
            .with_header("Content-Encoding", encoding)
            .with_header("Content-Length", chunked_content_length(body.length, self.chunk_size))
            .with_header(DECODED_LENGTH_HEADER, body.length)
        )
        request = self._with_auth_headers(request, credentials, timestamp)
        request = request.with_header(CONTENT_SHA256_HEADER, STREAMING_PAYLOAD)

        request, seed = self._authorize(
            request, credentials, timestamp, scope, key, STREAMING_PAYLOAD
        )
        payload = ChunkedPayload(
            body.payload(), body.length, self.chunk_size, key, timestamp, scope, seed
        )
        return request.with_body(
            Body.of_stream(payload, length=len(payload), content_type=body.content_type)
        )
