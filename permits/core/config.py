from decimal import Decimal
from functools import lru_cache
from typing import Dict, List

from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ROLE_CAPABILITIES: Dict[str, List[str]] = {
    "SuperAdmin": ["CAN_BYPASS", "CAN_DELETE_ANY"],
    "Admin": [
        "CAN_CREATE_APPLICATION",
        "CAN_ASSESS",
        "CAN_APPROVE",
        "CAN_RECORD_PAYMENT",
        "CAN_ISSUE",
        "CAN_RELEASE",
    ],
    "Approver": ["CAN_APPROVE", "CAN_RECORD_PAYMENT", "CAN_ISSUE", "CAN_RELEASE"],
    "Assessor": ["CAN_ASSESS"],
    "Application Creator": ["CAN_CREATE_APPLICATION"],
    "Viewer": [],
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # ─────────── APP ───────────
    app_name: str = "Permit Application Management"
    environment: str = "dev"
    log_level: str = "INFO"

    # ─────────── API ───────────
    api_prefix: str = "/api/v1"
    request_id_header: str = "X-Request-Id"

    # ─────────── DATABASE ───────────
    database_url: str
    lock_timeout_ms: int = 5000

    # ─────────── JWT / AUTH ───────────
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    jwt_access_token_minutes: int = 1440  # 24 hours

    # role name -> capability names (JSON in env: ROLE_CAPABILITIES)
    role_capabilities: Dict[str, List[str]] = DEFAULT_ROLE_CAPABILITIES

    # ─────────── PAYMENTS / NUMBERING ───────────
    payment_tolerance: Decimal = Decimal("0.00")
    allow_partial_payments: bool = True
    application_number_width: int = 4


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
