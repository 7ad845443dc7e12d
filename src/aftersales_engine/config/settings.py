"""Runtime settings loaded from environment variables."""

from functools import lru_cache
from typing import Annotated

from pydantic import Field, HttpUrl, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

NonEmptyStr = Annotated[str, Field(min_length=1)]
NonNegativeFloat = Annotated[float, Field(ge=0.0)]
NonNegativeInt = Annotated[int, Field(ge=0)]
PositiveInt = Annotated[int, Field(gt=0)]

SIDE_EFFECT_MARGIN_SECONDS = 5.0


class Settings(BaseSettings):
    """Environment-driven application settings."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: NonEmptyStr = Field(validation_alias="DATABASE_URL")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    web_base_url: HttpUrl = Field(validation_alias="WEB_BASE_URL")
    notifier_webhook_url: HttpUrl | None = Field(
        default=None,
        validation_alias="NOTIFIER_WEBHOOK_URL",
    )
    notifier_timeout_seconds: NonNegativeFloat = Field(
        default=30.0,
        validation_alias="NOTIFIER_TIMEOUT_SECONDS",
    )
    notifier_max_retries: NonNegativeInt = Field(
        default=2,
        validation_alias="NOTIFIER_MAX_RETRIES",
    )
    side_effect_timeout_seconds: NonNegativeFloat | None = Field(
        default=None,
        validation_alias="SIDE_EFFECT_TIMEOUT_SECONDS",
    )
    sla_window_hours: PositiveInt = Field(default=168, validation_alias="SLA_WINDOW_HOURS")
    sla_priority_windows_enabled: bool = Field(
        default=False,
        validation_alias="SLA_PRIORITY_WINDOWS_ENABLED",
    )
    sla_reminder_enabled: bool = Field(default=True, validation_alias="SLA_REMINDER_ENABLED")
    sla_reminder_interval_seconds: PositiveInt = Field(
        default=3600,
        validation_alias="SLA_REMINDER_INTERVAL_SECONDS",
    )
    blob_store_root: NonEmptyStr = Field(
        default="./var/blobs",
        validation_alias="BLOB_STORE_ROOT",
    )
    blob_signing_secret: NonEmptyStr = Field(validation_alias="BLOB_SIGNING_SECRET")
    blob_public_base_url: HttpUrl = Field(validation_alias="BLOB_PUBLIC_BASE_URL")
    attachment_url_ttl_seconds: PositiveInt = Field(
        default=3600,
        validation_alias="ATTACHMENT_URL_TTL_SECONDS",
    )
    attachment_max_files: PositiveInt = Field(default=10, validation_alias="ATTACHMENT_MAX_FILES")
    attachment_max_bytes: PositiveInt = Field(
        default=10 * 1024 * 1024,
        validation_alias="ATTACHMENT_MAX_BYTES",
    )

    @model_validator(mode="after")
    def _side_effects_outlast_notifier_retries(self) -> "Settings":
        explicit = self.side_effect_timeout_seconds
        budget = notifier_delivery_budget_seconds(
            timeout_seconds=self.notifier_timeout_seconds,
            max_retries=self.notifier_max_retries,
        )
        if explicit is not None and explicit < budget:
            raise ValueError(
                "SIDE_EFFECT_TIMEOUT_SECONDS must be at least "
                f"{budget:g}s to cover every notifier attempt and back-off"
            )
        return self

    @property
    def side_effect_budget_seconds(self) -> float:
        """Outer bound for one side effect; derived from notifier retries unless set."""

        if self.side_effect_timeout_seconds is not None:
            return self.side_effect_timeout_seconds
        budget = notifier_delivery_budget_seconds(
            timeout_seconds=self.notifier_timeout_seconds,
            max_retries=self.notifier_max_retries,
        )
        return budget + SIDE_EFFECT_MARGIN_SECONDS


def notifier_delivery_budget_seconds(*, timeout_seconds: float, max_retries: int) -> float:
    """Worst case for one notification: every attempt times out, plus 1s, 2s, ... back-off."""

    backoff = sum(range(1, max_retries + 1))
    return timeout_seconds * (max_retries + 1) + backoff


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Load and cache application settings."""

    return Settings()  # type: ignore[call-arg]
