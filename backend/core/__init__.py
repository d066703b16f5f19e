"""Core configuration, security and error primitives."""

from .config import Settings, settings
from .security import create_access_token, decode_token, subject_from_access_token

__all__ = [
    "Settings",
    "settings",
    "create_access_token",
    "decode_token",
    "subject_from_access_token",
]
