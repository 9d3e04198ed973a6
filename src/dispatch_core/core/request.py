# src/dispatch_core/core/request.py
"""
Каноническая модель запроса.

CanonicalRequest - неизменяемое описание одного HTTP обмена:
метод, endpoint, упорядоченный multimap query параметров,
case-insensitive multimap заголовков и дескриптор тела.

Любая трансформация возвращает новый объект, поэтому один и тот же
запрос можно безопасно переподписывать на каждой попытке.
"""

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    IO,
    Any,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
)
from urllib.parse import parse_qsl, quote, unquote, urlencode, urlsplit

from .exceptions import SigningError

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

DEFAULT_PORTS = {"http": 80, "https": 443}

Pairs = Tuple[Tuple[str, str], ...]
PairsLike = Union[Mapping[str, Any], Iterable[Tuple[str, Any]], None]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ENCODING
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def percent_encode(value: str, safe: str = "/,") -> str:
    """
    RFC 3986 percent-encoding.

    Незарезервированные символы (A-Z a-z 0-9 - _ . ~) и символы из
    `safe` остаются как есть. По умолчанию исключения - ровно `/` и `,`.

    Examples:
        >>> percent_encode("a b#c/d,e")
        'a%20b%23c/d,e'
    """
    return quote(str(value), safe=safe)


def strict_encode(value: str) -> str:
    """Кодирование без исключений (для канонических строк подписи)."""
    return quote(str(value), safe="-_.~")


def _to_pairs(items: PairsLike) -> Pairs:
    if items is None:
        return ()
    if isinstance(items, Mapping):
        items = items.items()
    return tuple((str(k), "" if v is None else str(v)) for k, v in items)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# METHOD
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class HttpMethod(str, Enum):
    """HTTP методы."""
    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    OPTIONS = "OPTIONS"

    def __str__(self) -> str:
        return self.value


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# HEADERS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class Headers:
    """
    Неизменяемый multimap заголовков.

    Имена сравниваются без учёта регистра, порядок вставки сохраняется,
    исходное написание имени тоже.

    Examples:
        >>> h = Headers.of({"Content-Type": "text/plain"})
        >>> h.get("content-type")
        'text/plain'
        >>> h.add("X-Amz-Meta", "a").add("x-amz-meta", "b").get_all("X-AMZ-META")
        ['a', 'b']
    """
    pairs: Pairs = ()

    @classmethod
    def of(cls, items: PairsLike = None) -> "Headers":
        if isinstance(items, Headers):
            return items
        return cls(_to_pairs(items))

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        key = name.lower()
        for k, v in self.pairs:
            if k.lower() == key:
                return v
        return default

    def get_all(self, name: str) -> List[str]:
        key = name.lower()
        return [v for k, v in self.pairs if k.lower() == key]

    def names(self) -> List[str]:
        """Уникальные имена в порядке первого появления."""
        seen = set()
        result = []
        for k, _ in self.pairs:
            if k.lower() not in seen:
                seen.add(k.lower())
                result.append(k)
        return result

    def items(self) -> Pairs:
        return self.pairs

    def add(self, name: str, value: Any) -> "Headers":
        return Headers(self.pairs + ((name, str(value)),))

    def without(self, name: str) -> "Headers":
        key = name.lower()
        return Headers(tuple((k, v) for k, v in self.pairs if k.lower() != key))

    def with_header(self, name: str, value: Any) -> "Headers":
        """Заменить все значения `name` одним."""
        return self.without(name).add(name, value)

    def to_dict(self) -> dict:
        """Плоский dict: повторяющиеся значения склеиваются через ',' (как при подписи)."""
        result: dict = {}
        for name in self.names():
            result[name] = ",".join(self.get_all(name))
        return result

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self.pairs)

    def __len__(self) -> int:
        return len(self.pairs)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return [(k.lower(), v) for k, v in self.pairs] == [
            (k.lower(), v) for k, v in other.pairs
        ]

    def __hash__(self) -> int:
        return hash(tuple((k.lower(), v) for k, v in self.pairs))


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# BODY
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _is_seekable(stream: IO[bytes]) -> bool:
    seekable = getattr(stream, "seekable", None)
    if seekable is None:
        return False
    try:
        return bool(seekable())
    except (OSError, ValueError):
        return False


@dataclass(frozen=True)
class Body:
    """
    Дескриптор тела запроса.

    Либо байты в памяти, либо поток. Поток с поддержкой seek считается
    повторяемым: перед каждой попыткой он перематывается на стартовую
    позицию. Неперематываемый поток можно отправить только один раз.

    Args:
        data: Байты тела (если тело в памяти)
        stream: Файлоподобный объект (если тело потоковое)
        content_type: Content-Type
        length: Длина в байтах (None если неизвестна)
        content_md5: Base64 MD5 (если известен заранее)
    """
    data: Optional[bytes] = None
    stream: Optional[IO[bytes]] = field(default=None, compare=False)
    content_type: Optional[str] = None
    length: Optional[int] = None
    content_md5: Optional[str] = None
    _start: Optional[int] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if (self.data is None) == (self.stream is None):
            raise ValueError("Body requires exactly one of data or stream")
        if self.data is not None and self.length is None:
            object.__setattr__(self, "length", len(self.data))
        if self.stream is not None and _is_seekable(self.stream):
            object.__setattr__(self, "_start", self.stream.tell())

    @classmethod
    def of_bytes(cls, data: bytes, content_type: Optional[str] = None) -> "Body":
        return cls(data=bytes(data), content_type=content_type)

    @classmethod
    def of_text(cls, text: str, content_type: str = "text/plain; charset=utf-8") -> "Body":
        return cls(data=text.encode("utf-8"), content_type=content_type)

    @classmethod
    def of_form(cls, params: PairsLike) -> "Body":
        encoded = urlencode(_to_pairs(params)).encode("utf-8")
        return cls(data=encoded, content_type=FORM_CONTENT_TYPE)

    @classmethod
    def of_stream(
        cls,
        stream: IO[bytes],
        length: Optional[int] = None,
        content_type: Optional[str] = None,
    ) -> "Body":
        return cls(stream=stream, length=length, content_type=content_type)

    @property
    def repeatable(self) -> bool:
        return self.data is not None or self._start is not None

    def rewind(self) -> bool:
        """
        Вернуть тело в исходное состояние.

        Returns:
            False если поток нельзя перемотать
        """
        if self.data is not None:
            return True
        if self._start is None:
            return False
        self.stream.seek(self._start)
        return True

    def payload(self) -> Union[bytes, IO[bytes]]:
        """То, что отдаётся транспорту."""
        return self.data if self.data is not None else self.stream

    def digest(self, algorithm: str = "sha256") -> bytes:
        """
        Хеш тела.

        Поток читается целиком и перематывается обратно.

        Raises:
            SigningError: Поток нельзя перечитать после хеширования
        """
        hasher = hashlib.new(algorithm)
        if self.data is not None:
            hasher.update(self.data)
            return hasher.digest()

        if self._start is None:
            raise SigningError(
                "Cannot hash a non-seekable stream body; "
                "buffer the payload or use an unsigned payload"
            )
        self.stream.seek(self._start)
        for chunk in iter(lambda: self.stream.read(64 * 1024), b""):
            hasher.update(chunk)
        self.stream.seek(self._start)
        return hasher.digest()

    def read_all(self) -> bytes:
        if self.data is not None:
            return self.data
        if self._start is None:
            raise SigningError("Cannot read a non-seekable stream body twice")
        self.stream.seek(self._start)
        content = self.stream.read()
        self.stream.seek(self._start)
        return content


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# REQUEST
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class CanonicalRequest:
    """
    Неизменяемый HTTP запрос.

    Args:
        method: HTTP метод
        endpoint: scheme://host[:port]/path без query строки
        query: Упорядоченные пары (name, value), значения не закодированы
        headers: Заголовки
        body: Тело (опционально)

    Raises:
        ValueError: Endpoint не абсолютный http(s) URL или содержит query

    Examples:
        >>> req = CanonicalRequest.from_url("GET", "https://ec2.example.com/?Action=DescribeInstances")
        >>> req.action()
        'DescribeInstances'
        >>> req.with_header("X-Trace", "1").headers.get("x-trace")
        '1'
    """
    method: HttpMethod
    endpoint: str
    query: Pairs = ()
    headers: Headers = field(default_factory=Headers)
    body: Optional[Body] = None

    def __post_init__(self):
        if not self.method:
            raise ValueError("method is required")
        try:
            method = HttpMethod(str(self.method).upper())
        except ValueError:
            raise ValueError(f"Unsupported HTTP method: {self.method}")
        object.__setattr__(self, "method", method)

        parts = urlsplit(self.endpoint or "")
        if parts.scheme not in DEFAULT_PORTS or not parts.hostname:
            raise ValueError(f"Endpoint must be an absolute http(s) URL: {self.endpoint!r}")
        if parts.query or parts.fragment:
            raise ValueError(
                f"Endpoint must not carry a query string or fragment: {self.endpoint!r}"
            )
        if not parts.path:
            object.__setattr__(self, "endpoint", self.endpoint + "/")

        object.__setattr__(self, "query", _to_pairs(self.query))
        object.__setattr__(self, "headers", Headers.of(self.headers))

    @classmethod
    def from_url(
        cls,
        method: Union[str, HttpMethod],
        url: str,
        headers: PairsLike = None,
        body: Optional[Body] = None,
    ) -> "CanonicalRequest":
        """Разобрать URL с query строкой в запрос."""
        parts = urlsplit(url)
        endpoint = f"{parts.scheme}://{parts.netloc}{parts.path}"
        query = parse_qsl(parts.query, keep_blank_values=True)
        return cls(
            method=method,
            endpoint=endpoint,
            query=tuple(query),
            headers=Headers.of(headers),
            body=body,
        )

    # ==================== Трансформации ====================

    def _replace(self, **changes) -> "CanonicalRequest":
        values = {
            "method": self.method,
            "endpoint": self.endpoint,
            "query": self.query,
            "headers": self.headers,
            "body": self.body,
        }
        values.update(changes)
        return CanonicalRequest(**values)

    def with_header(self, name: str, value: Any) -> "CanonicalRequest":
        return self._replace(headers=self.headers.with_header(name, value))

    def add_header(self, name: str, value: Any) -> "CanonicalRequest":
        return self._replace(headers=self.headers.add(name, value))

    def without_header(self, name: str) -> "CanonicalRequest":
        return self._replace(headers=self.headers.without(name))

    def with_headers(self, items: PairsLike) -> "CanonicalRequest":
        headers = self.headers
        for name, value in _to_pairs(items):
            headers = headers.with_header(name, value)
        return self._replace(headers=headers)

    def with_query_param(self, name: str, value: Any) -> "CanonicalRequest":
        return self._replace(query=self.query + ((name, str(value)),))

    def replace_query_param(self, name: str, value: Any) -> "CanonicalRequest":
        kept = tuple((k, v) for k, v in self.query if k != name)
        return self._replace(query=kept + ((name, str(value)),))

    def without_query_param(self, name: str) -> "CanonicalRequest":
        return self._replace(query=tuple((k, v) for k, v in self.query if k != name))

    def with_body(self, body: Optional[Body]) -> "CanonicalRequest":
        return self._replace(body=body)

    def with_endpoint(self, endpoint: str) -> "CanonicalRequest":
        return self._replace(endpoint=endpoint)

    def with_entity_headers(self) -> "CanonicalRequest":
        """
        Content-Type и Content-Length из дескриптора тела, если их нет.

        Вызывается до подписи, чтобы подписанные заголовки совпали
        с отправленными.
        """
        if self.body is None:
            return self
        headers = self.headers
        if self.body.content_type and "Content-Type" not in headers:
            headers = headers.add("Content-Type", self.body.content_type)
        if self.body.length is not None and "Content-Length" not in headers:
            headers = headers.add("Content-Length", self.body.length)
        if headers is self.headers:
            return self
        return self._replace(headers=headers)

    # ==================== Доступ ====================

    @property
    def scheme(self) -> str:
        return urlsplit(self.endpoint).scheme

    @property
    def host(self) -> str:
        return urlsplit(self.endpoint).hostname

    @property
    def host_header(self) -> str:
        """Host заголовок: порт только если он не стандартный."""
        parts = urlsplit(self.endpoint)
        port = parts.port
        if port is None or port == DEFAULT_PORTS[parts.scheme]:
            return parts.hostname
        return f"{parts.hostname}:{port}"

    @property
    def path(self) -> str:
        """Путь как есть (уже закодированный)."""
        return urlsplit(self.endpoint).path or "/"

    @property
    def decoded_path(self) -> str:
        return unquote(self.path)

    @property
    def query_string(self) -> str:
        return "&".join(
            f"{percent_encode(k)}={percent_encode(v)}" for k, v in self.query
        )

    @property
    def url(self) -> str:
        if not self.query:
            return self.endpoint
        return f"{self.endpoint}?{self.query_string}"

    def first_query_value(self, name: str) -> Optional[str]:
        for k, v in self.query:
            if k == name:
                return v
        return None

    def has_query_param(self, name: str) -> bool:
        return any(k == name for k, _ in self.query)

    def form_params(self) -> Pairs:
        """Параметры из тела application/x-www-form-urlencoded."""
        if self.body is None or self.body.data is None:
            return ()
        content_type = self.body.content_type or self.headers.get("Content-Type") or ""
        if not content_type.lower().startswith(FORM_CONTENT_TYPE):
            return ()
        return tuple(parse_qsl(self.body.data.decode("utf-8"), keep_blank_values=True))

    def action(self, param: str = "Action") -> Optional[str]:
        """Встроенное имя операции из query или form тела (Query API стиль)."""
        value = self.first_query_value(param)
        if value is not None:
            return value
        for k, v in self.form_params():
            if k == param:
                return v
        return None

    def describe(self) -> str:
        """Метод и endpoint без query строки (для сообщений об ошибках)."""
        return f"{self.method.value} {self.endpoint}"
