from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, model_validator

from .constants import (
    DEFAULT_CRITICAL_DAYS,
    DEFAULT_EVENT_TOPIC,
    DEFAULT_HIGH_DAYS,
    DEFAULT_MAX_ATTEMPTS,
)


class AlertConfig(BaseModel):
    """Day thresholds used to classify deadline severity."""

    critical_days: int = DEFAULT_CRITICAL_DAYS
    high_days: int = DEFAULT_HIGH_DAYS

    @model_validator(mode="after")
    def _check_order(self) -> "AlertConfig":
        if self.critical_days > self.high_days:
            raise ValueError("critical_days must not exceed high_days")
        return self


class RetryConfig(BaseModel):
    """Bounded retry settings for compare-and-swap conflicts."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    initial_delay: float = 0.05
    factor: float = 2.0
    jitter: float = 0.05


class RedisConfig(BaseModel):
    """Configuration for Redis transport."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TransportConfig(BaseModel):
    """Event transport configuration settings."""

    backend: Literal["none", "inmemory", "redis"] = "none"
    topic: str = DEFAULT_EVENT_TOPIC
    redis: RedisConfig = RedisConfig()


class ComplyFlowConfig(BaseModel):
    """Top-level configuration model."""

    alerts: AlertConfig = AlertConfig()
    retry: RetryConfig = RetryConfig()
    transport: TransportConfig = TransportConfig()
    database_url: Optional[str] = None
    timeline_url: Optional[str] = None
    definitions_path: Optional[str] = None
    rules_path: Optional[str] = None


def load_config(path: Optional[str] = None) -> ComplyFlowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to COMPLYFLOW_CONFIG env
            variable or 'complyflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("COMPLYFLOW_CONFIG", "complyflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = ComplyFlowConfig(**data)
    else:
        config = ComplyFlowConfig()

    env_db_url = os.getenv("COMPLYFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_transport = os.getenv("COMPLYFLOW_TRANSPORT")
    if env_transport:
        config.transport.backend = env_transport.lower()
    return config
