"""Engine configuration loaded from environment variables.

The protocol catalog and hotline directory are versioned JSON documents
shipped as package data; their paths can be overridden here.
"""
import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_DEV_SALT = "default_dev_salt_change_in_production_32chars"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class EngineSettings:
    """Runtime settings for the crisis engine.

    Defaults are safe for local development: in-memory stores, no webhook
    gateway, neutral classifier, and Kinesis alerts disabled.
    """
    pii_salt: str = DEFAULT_DEV_SALT
    protocol_catalog_path: Optional[str] = None
    hotline_directory_path: Optional[str] = None
    default_language: str = "en"
    default_country: str = "US"

    # Orchestrator
    channel_confirmation_seconds: float = 30.0

    # Risk assessor behavior check
    behavior_window: int = 10
    crisis_flag_window_days: int = 7
    crisis_flag_threshold: int = 2

    # Classifier
    classifier_enabled: bool = False
    classifier_model: str = "j-hartmann/emotion-english-distilroberta-base"

    # Crisis-team alert stream
    alerts_enabled: bool = False
    crisis_stream_name: str = "safeharbor-crisis-alerts"
    aws_region: str = "us-east-1"

    # Contact gateway
    contact_webhook_url: Optional[str] = None
    dispatch_webhook_url: Optional[str] = None
    referral_webhook_url: Optional[str] = None
    webhook_timeout_seconds: float = 10.0

    # Persistence
    database_enabled: bool = False

    def __post_init__(self):
        if self.channel_confirmation_seconds <= 0:
            raise ValueError(
                f"channel_confirmation_seconds must be positive, got {self.channel_confirmation_seconds}"
            )
        if self.behavior_window < 1:
            raise ValueError(f"behavior_window must be at least 1, got {self.behavior_window}")

    @property
    def gateway_configured(self) -> bool:
        return any((self.contact_webhook_url, self.dispatch_webhook_url, self.referral_webhook_url))

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Create settings from environment variables.

        Environment variables:
            PII_HASH_SALT: Salt for hashing identifiers (min 32 chars)
            PROTOCOL_CATALOG_PATH: Override for the protocol catalog JSON
            HOTLINE_DIRECTORY_PATH: Override for the hotline directory JSON
            DEFAULT_LANGUAGE: Preferred hotline language (default en)
            DEFAULT_COUNTRY: Region used when location is unknown (default US)
            CHANNEL_CONFIRMATION_SECONDS: Soft per-channel window (default 30)
            BEHAVIOR_WINDOW: Mood entries considered (default 10)
            CRISIS_FLAG_WINDOW_DAYS: Crisis history window (default 7)
            CRISIS_FLAG_THRESHOLD: Flags above this escalate (default 2)
            CLASSIFIER_ENABLED: Load the transformers classifier (default false)
            CLASSIFIER_MODEL: HuggingFace model name
            CRISIS_ALERTS_ENABLED: Publish crisis-team alerts (default false)
            KINESIS_STREAM_NAME: Crisis-team alert stream
            AWS_REGION: AWS region (default us-east-1)
            CONTACT_WEBHOOK_URL / DISPATCH_WEBHOOK_URL / REFERRAL_WEBHOOK_URL
            WEBHOOK_TIMEOUT_SECONDS: Per-request timeout (default 10)
            DB_ENABLED: Use PostgreSQL stores (default false)
        """
        return cls(
            pii_salt=os.getenv("PII_HASH_SALT", DEFAULT_DEV_SALT),
            protocol_catalog_path=os.getenv("PROTOCOL_CATALOG_PATH") or None,
            hotline_directory_path=os.getenv("HOTLINE_DIRECTORY_PATH") or None,
            default_language=os.getenv("DEFAULT_LANGUAGE", "en"),
            default_country=os.getenv("DEFAULT_COUNTRY", "US"),
            channel_confirmation_seconds=float(os.getenv("CHANNEL_CONFIRMATION_SECONDS", "30")),
            behavior_window=int(os.getenv("BEHAVIOR_WINDOW", "10")),
            crisis_flag_window_days=int(os.getenv("CRISIS_FLAG_WINDOW_DAYS", "7")),
            crisis_flag_threshold=int(os.getenv("CRISIS_FLAG_THRESHOLD", "2")),
            classifier_enabled=_env_bool("CLASSIFIER_ENABLED", False),
            classifier_model=os.getenv(
                "CLASSIFIER_MODEL", "j-hartmann/emotion-english-distilroberta-base"
            ),
            alerts_enabled=_env_bool("CRISIS_ALERTS_ENABLED", False),
            crisis_stream_name=os.getenv("KINESIS_STREAM_NAME", "safeharbor-crisis-alerts"),
            aws_region=os.getenv("AWS_REGION", "us-east-1"),
            contact_webhook_url=os.getenv("CONTACT_WEBHOOK_URL") or None,
            dispatch_webhook_url=os.getenv("DISPATCH_WEBHOOK_URL") or None,
            referral_webhook_url=os.getenv("REFERRAL_WEBHOOK_URL") or None,
            webhook_timeout_seconds=float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", "10")),
            database_enabled=_env_bool("DB_ENABLED", False),
        )
