"""Shared utilities package for the DashStream client"""

from .storage import (
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    CredentialPair,
    MemoryTokenStorage,
    TokenStorage,
)
from .jwt_utils import parse_jwt_claims, summarize_claims

__all__ = [
    "ACCESS_TOKEN_KEY",
    "REFRESH_TOKEN_KEY",
    "CredentialPair",
    "MemoryTokenStorage",
    "TokenStorage",
    "parse_jwt_claims",
    "summarize_claims",
]
