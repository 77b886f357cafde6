from __future__ import annotations

from dataclasses import fields
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from origin_router.errors import ConfigError
from origin_router.logging import get_log_level_value
from origin_router.transport import RequestOptions

_REQUEST_OPTION_FIELDS = frozenset(item.name for item in fields(RequestOptions))


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(
        env_prefix=prefix,
        case_sensitive=False,
        env_nested_delimiter="__",
    )


class ScoringWeights(BaseModel):
    """Relative weights of the four backend scoring terms."""

    model_config = ConfigDict(frozen=True)

    latency: float = Field(default=0.6, ge=0)
    success_rate: float = Field(default=0.3, ge=0)
    weight: float = Field(default=0.1, ge=0)
    region: float = Field(default=0.2, ge=0)


def _default_request_options() -> dict[str, Any]:
    return {
        "headers": {
            "Content-Type": "application/json",
            "X-Request-Source": "origin-router",
        }
    }


class RouterSettings(BaseSettings):
    """Router behavior settings, overridable through ``ORIGIN_ROUTER_*`` env vars."""

    model_config = prefixed_settings_config("ORIGIN_ROUTER_")

    health_check_endpoint: str = "/health"
    health_check_timeout_ms: int = 3_000
    health_check_interval_ms: int = 60_000
    health_check_method: str = "HEAD"
    max_retry_attempts: int = 3
    initial_retry_delay_ms: int = 1_000
    max_retry_delay_ms: int = 30_000
    circuit_breaker_threshold: int = 5
    circuit_breaker_cooldown_ms: int = 30_000
    enable_regional_routing: bool = False
    scoring_weights: ScoringWeights = Field(default_factory=ScoringWeights)
    default_request_options: dict[str, Any] = Field(
        default_factory=_default_request_options
    )
    location_lookup_url: str = "https://ipapi.co/json/"
    location_lookup_timeout_ms: int = 5_000
    log_level: str = "INFO"

    @field_validator("health_check_endpoint", mode="before")
    @classmethod
    def _normalize_endpoint(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip()
        if not normalized.startswith("/"):
            normalized = f"/{normalized}"
        return normalized

    @field_validator("health_check_method", mode="before")
    @classmethod
    def _normalize_method(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip().upper()
        if not normalized:
            raise ValueError("health_check_method must be non-empty")
        return normalized

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        get_log_level_value(value)
        return value.strip().upper()

    @field_validator(
        "health_check_timeout_ms",
        "health_check_interval_ms",
        "circuit_breaker_threshold",
        "location_lookup_timeout_ms",
    )
    @classmethod
    def _validate_positive(cls, value: int, info: ValidationInfo) -> int:
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator(
        "max_retry_attempts",
        "initial_retry_delay_ms",
        "max_retry_delay_ms",
        "circuit_breaker_cooldown_ms",
    )
    @classmethod
    def _validate_non_negative(cls, value: int, info: ValidationInfo) -> int:
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator("default_request_options")
    @classmethod
    def _validate_request_options(cls, value: dict[str, Any]) -> dict[str, Any]:
        unknown = sorted(set(value) - _REQUEST_OPTION_FIELDS)
        if unknown:
            raise ValueError(
                f"default_request_options has unknown keys: {', '.join(unknown)}"
            )
        return value

    @model_validator(mode="after")
    def _validate_retry_delays(self) -> RouterSettings:
        if self.max_retry_delay_ms < self.initial_retry_delay_ms:
            raise ValueError("max_retry_delay_ms must be >= initial_retry_delay_ms")
        return self

    def request_defaults(self) -> RequestOptions:
        """Build the options every outgoing request starts from."""
        return RequestOptions(**self.default_request_options)

    def with_updates(self, **changes: object) -> RouterSettings:
        """Return validated settings with ``changes`` applied.

        Raises:
            ConfigError: If a change names an unknown setting or fails
                validation.
        """
        unknown = sorted(set(changes) - set(type(self).model_fields))
        if unknown:
            raise ConfigError(f"Unknown settings: {', '.join(unknown)}")
        values = self.model_dump()
        values.update(changes)
        try:
            return type(self).model_validate(values)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc
