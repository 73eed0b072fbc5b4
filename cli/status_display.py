"""Status display functionality for CLI"""

from typing import Optional

from rich.table import Table

from utils.jwt_utils import summarize_claims
from utils.storage import TokenStorage


def show_token_status(storage: TokenStorage, console, verified: Optional[bool] = None):
    """
    Display detailed token status

    Args:
        storage: TokenStorage instance
        console: Rich console for output
        verified: Result of a server-side token check, if one was made
    """
    status = storage.get_status()

    table = Table(title="Token Status Details")
    table.add_column("Property", style="cyan")
    table.add_column("Value")

    table.add_row("Has Tokens", "Yes" if status["has_tokens"] else "No")
    table.add_row("Is Expired", "Yes" if status["is_expired"] else "No")

    if status["expires_at"]:
        table.add_row("Expires At", status["expires_at"])
        table.add_row("Time Until Expiry", status["time_until_expiry"])

    access_token = storage.get_access_token()
    if access_token:
        claims = summarize_claims(access_token)
        if claims.get("sub"):
            table.add_row("Subject", str(claims["sub"]))
        if claims.get("role"):
            table.add_row("Role", str(claims["role"]))

    if verified is not None:
        table.add_row("Server Check", "[green]Accepted[/green]" if verified else "[red]Rejected[/red]")

    table.add_row("Token File", str(storage.token_file))

    console.print(table)


def get_auth_status(storage: TokenStorage) -> tuple[str, str]:
    """
    Get authentication status and expiry info

    Args:
        storage: TokenStorage instance

    Returns:
        Tuple of (status, detail_message)
    """
    status = storage.get_status()

    if not status["has_tokens"]:
        return "NO AUTH", "No tokens available"

    if status["is_expired"]:
        return "EXPIRED", f"Expired {status['time_until_expiry']}"

    # Opaque tokens carry no expiry the client can read
    if not status["expires_at"]:
        return "VALID", "Expiry unknown"

    return "VALID", f"Expires in {status['time_until_expiry']}"
