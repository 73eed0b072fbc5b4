import json
import logging
import os
import platform
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from settings import TOKEN_FILE
from .jwt_utils import parse_jwt_claims

logger = logging.getLogger(__name__)

# The pair is persisted under two distinct keys so a partial write is detectable
ACCESS_TOKEN_KEY = "dashstream_access_token"
REFRESH_TOKEN_KEY = "dashstream_refresh_token"


@dataclass(frozen=True)
class CredentialPair:
    """Access and refresh tokens, always stored and cleared together

    Attributes:
        access_token: Bearer token attached to API requests
        refresh_token: One-time-use token exchanged for a new pair
    """
    access_token: str
    refresh_token: str


class TokenStorage:
    """Credential pair storage backed by a JSON file with owner-only permissions

    Writes replace the whole file atomically, so a reader never observes an
    access token without its refresh token.
    """

    def __init__(self, token_file: Optional[str] = None):
        self.token_path = Path(token_file if token_file else TOKEN_FILE)
        self._ensure_secure_directory()

    def _ensure_secure_directory(self):
        """Create parent directory with secure permissions"""
        parent_dir = self.token_path.parent
        if not parent_dir.exists():
            parent_dir.mkdir(parents=True, exist_ok=True)
            # Set directory permissions to 700 on Unix-like systems
            if platform.system() != "Windows":
                os.chmod(parent_dir, 0o700)

    # Raw key/value access, overridden by alternative backends

    def _read(self) -> Dict[str, Any]:
        if not self.token_path.exists():
            return {}
        try:
            data = json.loads(self.token_path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Failed to read token file {self.token_path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        self._ensure_secure_directory()
        tmp_path = self.token_path.with_name(self.token_path.name + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2))
        if platform.system() != "Windows":
            os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, self.token_path)

    def _remove(self) -> None:
        if self.token_path.exists():
            self.token_path.unlink()

    # Credential pair API

    def save_tokens(self, access_token: str, refresh_token: str) -> None:
        """Replace the stored pair as a single write

        Raises:
            ValueError: If either token is empty
        """
        if not access_token or not refresh_token:
            raise ValueError("Both access and refresh tokens are required")

        self._write({
            ACCESS_TOKEN_KEY: access_token,
            REFRESH_TOKEN_KEY: refresh_token,
            "saved_at": int(time.time()),
        })
        logger.debug("Stored credential pair")

    def load_tokens(self) -> Optional[CredentialPair]:
        """Load the stored pair

        A store holding only one of the two keys is treated as a failed
        partial write: it is cleared and reported as empty.
        """
        data = self._read()
        access_token = data.get(ACCESS_TOKEN_KEY)
        refresh_token = data.get(REFRESH_TOKEN_KEY)

        if access_token and refresh_token:
            return CredentialPair(access_token=access_token, refresh_token=refresh_token)

        if access_token or refresh_token:
            logger.warning("Found a partial credential pair in storage, clearing it")
            self.clear_tokens()
        return None

    def clear_tokens(self) -> None:
        """Remove stored tokens"""
        self._remove()
        logger.debug("Cleared credential pair")

    def get_access_token(self) -> Optional[str]:
        tokens = self.load_tokens()
        return tokens.access_token if tokens else None

    def get_refresh_token(self) -> Optional[str]:
        tokens = self.load_tokens()
        return tokens.refresh_token if tokens else None

    def has_tokens(self) -> bool:
        return self.load_tokens() is not None

    def get_status(self) -> Dict[str, Any]:
        """Get token status without exposing secrets"""
        tokens = self.load_tokens()
        if not tokens:
            return {
                "has_tokens": False,
                "is_expired": True,
                "expires_at": None,
                "time_until_expiry": "No tokens",
            }

        claims = parse_jwt_claims(tokens.access_token) or {}
        exp = claims.get("exp")
        if not isinstance(exp, (int, float)):
            # Opaque token, expiry is only known to the server
            return {
                "has_tokens": True,
                "is_expired": False,
                "expires_at": None,
                "time_until_expiry": "Unknown",
            }

        expires_at = int(exp)
        remaining = expires_at - int(time.time())
        if remaining <= 0:
            time_str = f"{(-remaining) // 60}m ago"
        elif remaining >= 3600:
            time_str = f"{remaining // 3600}h {(remaining % 3600) // 60}m"
        else:
            time_str = f"{remaining // 60}m"

        return {
            "has_tokens": True,
            "is_expired": remaining <= 0,
            "expires_at": datetime.fromtimestamp(expires_at).isoformat(),
            "time_until_expiry": time_str,
        }

    @property
    def token_file(self) -> Path:
        """Get the token file path"""
        return self.token_path


class MemoryTokenStorage(TokenStorage):
    """Process-local storage, used by tests and short-lived tools"""

    def __init__(self):
        self.token_path = Path(":memory:")
        self._data: Dict[str, Any] = {}

    def _read(self) -> Dict[str, Any]:
        return dict(self._data)

    def _write(self, data: Dict[str, Any]) -> None:
        self._data = dict(data)

    def _remove(self) -> None:
        self._data = {}
