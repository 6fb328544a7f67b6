"""Security helpers for shared-secret endpoints."""

import hmac


def verify_secret(provided: str | None, expected: str | None) -> bool:
    """Constant-time comparison of a provided secret against the configured one."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
