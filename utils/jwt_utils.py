"""JWT payload decoding for diagnostics (no signature verification)"""

import base64
import binascii
import json
from typing import Any, Dict, Optional


def parse_jwt_claims(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse JWT token and extract claims from payload

    Args:
        token: JWT token string

    Returns:
        Dictionary of claims, or None if the token is not a decodable JWT
    """
    if not token or token.count(".") != 2:
        return None

    try:
        _, payload, _ = token.split(".")
        # Add padding if needed
        padded = payload + "=" * (-len(payload) % 4)
        data = base64.urlsafe_b64decode(padded.encode())
        claims = json.loads(data.decode())
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None

    return claims if isinstance(claims, dict) else None


def summarize_claims(token: Optional[str]) -> Dict[str, Any]:
    """Return the claims worth logging when debugging permission issues"""
    claims = parse_jwt_claims(token) or {}
    return {
        "sub": claims.get("sub"),
        "role": claims.get("role") or claims.get("roles") or claims.get("scopes"),
        "exp": claims.get("exp"),
        "iat": claims.get("iat"),
    }
