from __future__ import annotations

from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sdx_sentinels.backoff import CEILING_FOR_MAX_ATTEMPTS, BackoffPolicy, Jitter
from sdx_sentinels.circuit_breaker.strategies import (
    FailureDetector,
    ThresholdTripStrategy,
)
from sdx_sentinels.logging import get_log_level_value
from sdx_sentinels.policy import CircuitBreakerPolicyConfig


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class SentinelSettings(BaseSettings):
    """Environment-driven defaults for breakers, policies and backoff."""

    model_config = prefixed_settings_config("SENTINELS_")

    log_level: str = "INFO"
    breaker_retry_interval_seconds: float = 5.0
    breaker_error_threshold: int = 0
    breaker_error_interval_seconds: float = 60.0
    policy_retry_interval_seconds: float = 0.25
    policy_failures_allowed_before_trip: int = 0
    backoff_max_attempts: int = 5
    backoff_base_delay_seconds: float = 0.1
    backoff_max_delay_seconds: float = 10.0
    backoff_jitter: Jitter = Jitter.FULL
    sentinel_monitor_interval_seconds: float = 5.0

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            get_log_level_value(value)
            return value.strip().upper()
        return value

    @field_validator("backoff_jitter", mode="before")
    @classmethod
    def _normalize_backoff_jitter(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator(
        "breaker_retry_interval_seconds",
        "breaker_error_interval_seconds",
        "policy_retry_interval_seconds",
        "backoff_base_delay_seconds",
        "backoff_max_delay_seconds",
        "breaker_error_threshold",
        "policy_failures_allowed_before_trip",
    )
    @classmethod
    def _validate_non_negative(cls, value: float, info: ValidationInfo) -> float:
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @model_validator(mode="after")
    def _validate_sentinel_settings(self) -> SentinelSettings:
        if not 0 <= self.backoff_max_attempts <= CEILING_FOR_MAX_ATTEMPTS:
            raise ValueError(
                f"backoff_max_attempts must be between 0 and {CEILING_FOR_MAX_ATTEMPTS}"
            )
        if self.backoff_max_delay_seconds < self.backoff_base_delay_seconds:
            raise ValueError(
                "backoff_max_delay_seconds must be >= backoff_base_delay_seconds"
            )
        if self.sentinel_monitor_interval_seconds <= 0:
            raise ValueError("sentinel_monitor_interval_seconds must be > 0")
        return self

    def policy_config(self) -> CircuitBreakerPolicyConfig:
        """Build a policy config from the ``policy_*`` settings."""
        return CircuitBreakerPolicyConfig(
            retry_interval=self.policy_retry_interval_seconds,
            failures_allowed_before_trip=self.policy_failures_allowed_before_trip,
        )

    def backoff_policy(self) -> BackoffPolicy:
        """Build a backoff policy from the ``backoff_*`` settings."""
        return BackoffPolicy(
            max_attempts=self.backoff_max_attempts,
            base_delay=self.backoff_base_delay_seconds,
            max_delay=self.backoff_max_delay_seconds,
            jitter=self.backoff_jitter,
        )

    def threshold_strategy(
        self, failure_detector: FailureDetector
    ) -> ThresholdTripStrategy:
        """Build a threshold strategy that reads the ``breaker_*`` settings.

        The getters read this settings instance on every call, so changes
        to its attributes take effect without rebuilding the strategy.
        """
        return ThresholdTripStrategy(
            failure_detector,
            lambda: self.breaker_retry_interval_seconds,
            lambda: self.breaker_error_threshold,
            lambda: self.breaker_error_interval_seconds,
        )
