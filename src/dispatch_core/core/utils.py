"""
Utility functions for dispatch core.

Includes:
- URL sanitization for safe logging (signature parameters included)
- Header sanitization
- UTC clock helpers
"""

from datetime import datetime, timezone
from typing import Callable, Optional, Set
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

Clock = Callable[[], datetime]


# Default sensitive parameter names that should be masked in logs
DEFAULT_SENSITIVE_PARAMS = {
    'api_key',
    'apikey',
    'token',
    'access_token',
    'refresh_token',
    'key',
    'secret',
    'password',
    'auth',
    'authorization',
    'credentials',
    'client_secret',
    'private_key',
    'session',
    'assertion',
    'signature',
    'awsaccesskeyid',
    'x-amz-signature',
    'x-amz-credential',
    'x-amz-security-token',
    'sig',
}


def sanitize_url(
    url: str,
    extra_params: Optional[Set[str]] = None,
    mask: str = 'REDACTED'
) -> str:
    """
    Mask sensitive query parameters in URL for safe logging.

    Pre-signed URLs carry the signature and credential in the query string,
    so those parameters are masked as well.

    Args:
        url: The URL to sanitize
        extra_params: Additional parameter names to mask (case-insensitive)
        mask: The string to use for masking (default: 'REDACTED')

    Returns:
        Sanitized URL with sensitive parameters masked

    Examples:
        >>> sanitize_url('https://bucket.example.com/k?X-Amz-Signature=abc&partNumber=1')
        'https://bucket.example.com/k?X-Amz-Signature=REDACTED&partNumber=1'
    """
    if not url:
        return url

    sensitive_params = DEFAULT_SENSITIVE_PARAMS | (
        {p.lower() for p in extra_params} if extra_params else set()
    )

    parsed = urlparse(url)
    if not parsed.query:
        return url

    params = parse_qsl(parsed.query, keep_blank_values=True)
    sanitized = [
        (name, mask if name.lower() in sensitive_params else value)
        for name, value in params
    ]
    return urlunparse(parsed._replace(query=urlencode(sanitized)))


def sanitize_headers(headers, mask: str = 'REDACTED') -> dict:
    """
    Mask sensitive headers for safe logging.

    Args:
        headers: Mapping or iterable of (name, value) pairs
        mask: The string to use for masking

    Returns:
        Sanitized headers dictionary

    Examples:
        >>> sanitize_headers({'Authorization': 'AWS id:sig'})
        {'Authorization': 'REDACTED'}
    """
    if not headers:
        return {}

    sensitive_header_names = {
        'authorization',
        'proxy-authorization',
        'cookie',
        'x-amz-security-token',
        'x-auth-token',
        'x-emc-signature',
    }

    items = headers.items() if hasattr(headers, 'items') else headers
    return {
        key: mask if key.lower() in sensitive_header_names else value
        for key, value in items
    }


def utc_now() -> datetime:
    """Текущее время в UTC (aware)."""
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Naive datetime считается UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def epoch_millis(moment: datetime) -> int:
    return int(as_utc(moment).timestamp() * 1000)
