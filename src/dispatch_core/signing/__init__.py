"""Request signers: legacy shared-key HMAC, scoped v4-style HMAC and JWT bearer."""

from .base import RequestSigner, SigningMode, hmac_digest, hmac_base64, sha256_hex
from .legacy import LegacyHmacSigner, shared_key_lite_signer
from .scoped import (
    ChunkedUploadSigner,
    ScopedHmacSigner,
    chunked_content_length,
    region_from_host,
    s3_signer,
    signing_key,
)
from .jwt import JWTSigner, TokenPlacement

__all__ = [
    "RequestSigner",
    "SigningMode",
    "hmac_digest",
    "hmac_base64",
    "sha256_hex",
    "LegacyHmacSigner",
    "shared_key_lite_signer",
    "ScopedHmacSigner",
    "ChunkedUploadSigner",
    "chunked_content_length",
    "region_from_host",
    "s3_signer",
    "signing_key",
    "JWTSigner",
    "TokenPlacement",
]
