# src/dispatch_core/utils/sanitizer.py
"""
Маскирование чувствительных данных в логах.

Секреты, токены сессии, подписи и bearer токены не должны попадать
в логи ни в полях, ни внутри строк (заголовок Authorization,
pre-signed URL).
"""

import re
from typing import Any, Dict


# Чувствительные поля (case-insensitive, совпадение по подстроке)
SENSITIVE_KEYS = {
    'password', 'passwd', 'secret', 'secret_key', 'client_secret',
    'token', 'session_token', 'security_token', 'access_token', 'refresh_token',
    'jwt', 'assertion', 'bearer',
    'api_key', 'apikey', 'private_key',
    'authorization', 'credentials', 'cookie',
    'signature',
}

# Регулярные выражения для sensitive данных внутри строк
SENSITIVE_PATTERNS = [
    # Bearer tokens
    (re.compile(r'(Bearer\s+)([A-Za-z0-9\-._~+/]+=*)', re.IGNORECASE), r'\1***REDACTED***'),
    # v4 подпись: "..., Signature=<hex>" и X-Amz-Signature=<hex> в URL
    (re.compile(r'((?:X-Amz-)?Signature=)([^\s&,;]+)', re.IGNORECASE), r'\1***REDACTED***'),
    # Токен сессии в URL и в канонической строке
    (re.compile(r'(x-(?:amz|ms)-security-token[=:])([^\s&,;]+)', re.IGNORECASE), r'\1***REDACTED***'),
    # Legacy подпись: "AWS id:sig", "SharedKeyLite account:sig"
    (re.compile(r'(\b(?:AWS|SharedKey|SharedKeyLite)\s+[^:\s]+:)(\S+)'), r'\1***REDACTED***'),
    # JWT assertion в form теле
    (re.compile(r'(assertion=)([^\s&,;]+)', re.IGNORECASE), r'\1***REDACTED***'),
]


def mask_sensitive_data(data: Any, mask: str = "***REDACTED***") -> Any:
    """
    Рекурсивно маскирует чувствительные данные в словарях, списках, строках.

    Args:
        data: Данные для маскирования (dict, list, str, или любой другой тип)
        mask: Строка-заменитель

    Returns:
        Копия данных с замаскированными чувствительными полями

    Examples:
        >>> mask_sensitive_data({"identity": "AKID", "secret": "wJalr..."})
        {'identity': 'AKID', 'secret': '***REDACTED***'}

        >>> mask_sensitive_data("AWS4-HMAC-SHA256 Credential=AKID/..., Signature=5d67")
        'AWS4-HMAC-SHA256 Credential=AKID/..., Signature=***REDACTED***'
    """
    if data is None or isinstance(data, (bool, int, float)):
        return data

    if isinstance(data, str):
        return _mask_string(data, mask)

    if isinstance(data, dict):
        return _mask_dict(data, mask)

    if isinstance(data, (list, tuple)):
        return type(data)(mask_sensitive_data(item, mask) for item in data)

    # Прочие объекты возвращаем как есть
    return data


def _mask_dict(data: Dict[Any, Any], mask: str) -> Dict[Any, Any]:
    result = {}
    for key, value in data.items():
        key_lower = key.lower() if isinstance(key, str) else str(key).lower()
        if _is_sensitive_key(key_lower):
            result[key] = mask
        else:
            result[key] = mask_sensitive_data(value, mask)
    return result


def _mask_string(text: str, mask: str) -> str:
    result = text
    for pattern, replacement in SENSITIVE_PATTERNS:
        result = pattern.sub(replacement.replace('***REDACTED***', mask), result)
    return result


def _is_sensitive_key(key: str) -> bool:
    """Точное совпадение или ключ содержит sensitive слово."""
    if key in SENSITIVE_KEYS:
        return True
    return any(sensitive_key in key for sensitive_key in SENSITIVE_KEYS)
