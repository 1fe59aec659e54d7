"""PII handling utilities: zero raw PII in application logs.

All user identifiers must be hashed before logging or storage in
developer-accessible systems.
"""
import hashlib
import logging
from typing import Optional

logger = logging.getLogger(__name__)


# Loaded from the environment or a secrets manager at engine startup
_PII_SALT: Optional[str] = None

MIN_SALT_LENGTH = 32


def configure_pii_salt(salt: str) -> None:
    """Configure the PII hashing salt.

    Must be called during application startup before any PII hashing.

    Args:
        salt: Secret salt value

    Raises:
        ValueError: If salt is empty or too short
    """
    global _PII_SALT
    if not salt or len(salt) < MIN_SALT_LENGTH:
        logger.critical(
            "PII_SALT_CONFIGURATION_FAILED",
            extra={"reason": "Salt too short or empty", "min_length": MIN_SALT_LENGTH}
        )
        raise ValueError(f"PII salt must be at least {MIN_SALT_LENGTH} characters")

    _PII_SALT = salt
    logger.info("PII_SALT_CONFIGURED", extra={"salt_length": len(salt)})


def is_pii_salt_configured() -> bool:
    return _PII_SALT is not None


def hash_pii(value: str) -> str:
    """Hash a PII value for safe logging and storage.

    Uses SHA-256 with a secret salt to create a consistent,
    non-reversible hash of user identifiers.

    Args:
        value: The PII value to hash (user ID, phone, etc.)

    Returns:
        Hashed string safe for logging

    Raises:
        RuntimeError: If PII salt has not been configured
    """
    if _PII_SALT is None:
        logger.critical(
            "PII_HASH_FAILED",
            extra={"reason": "Salt not configured", "action": "call configure_pii_salt()"}
        )
        raise RuntimeError("PII salt not configured. Call configure_pii_salt() first.")

    salted = f"{_PII_SALT}{value}"
    return hashlib.sha256(salted.encode()).hexdigest()


def safe_hash_pii(value: str) -> str:
    """Hash a PII value without ever raising.

    For fallback paths that must not depend on the salt being configured.
    Without a salt the value is replaced by a fixed marker rather than
    logged raw.
    """
    if _PII_SALT is None:
        return "unhashed_redacted"
    return hashlib.sha256(f"{_PII_SALT}{value}".encode()).hexdigest()


def hash_text_for_audit(text: str) -> str:
    """Hash message text for audit trail without exposing content.

    Args:
        text: Raw message text

    Returns:
        SHA-256 hash of the text
    """
    return hashlib.sha256(text.encode()).hexdigest()
