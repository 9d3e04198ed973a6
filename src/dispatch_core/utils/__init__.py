"""Utility modules for dispatch core."""

from .sanitizer import mask_sensitive_data

__all__ = ["mask_sensitive_data"]
