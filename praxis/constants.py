from datetime import datetime, timezone

ROLE_USER = "user"
ROLE_ADMIN = "admin"

TOTP_INTERVAL = 30
TOTP_DIGITS = 6


def utcnow() -> datetime:
    """Current time in UTC as a naive datetime, the form every table stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
