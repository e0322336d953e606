"""TOML config loading and profiles."""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"

WALLETCONNECT_ENV = "NEXT_PUBLIC_WALLETCONNECT_PROJECT_ID"


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return config_dir
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    config_dir = _find_config_dir(config_dir)
    default_path = config_dir / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = config_dir / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        http: dict[str, Any] | None = None,
        aggregation: dict[str, Any] | None = None,
        polymarket: dict[str, Any] | None = None,
        limitless: dict[str, Any] | None = None,
        wallet: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.http = http or {}
        self.aggregation = aggregation or {}
        self.polymarket = polymarket or {}
        self.limitless = limitless or {}
        self.wallet = wallet or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            http=raw.get("http"),
            aggregation=raw.get("aggregation"),
            polymarket=raw.get("polymarket"),
            limitless=raw.get("limitless"),
            wallet=raw.get("wallet"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def timeout_sec(self) -> float:
        return float(self.http.get("timeout_sec", 15.0))

    @property
    def user_agent(self) -> str:
        return self.http.get("user_agent", "PredictHub/1.0")

    @property
    def rate_limit_enabled(self) -> bool:
        return bool(self.http.get("rate_limit", False))

    @property
    def requests_per_minute(self) -> int:
        return int(self.http.get("requests_per_minute", 60))

    @property
    def requests_per_hour(self) -> int:
        return int(self.http.get("requests_per_hour", 1000))

    @property
    def cache_ttl_sec(self) -> float:
        return float(self.http.get("cache_ttl_sec", 60))

    @property
    def default_limit(self) -> int:
        return int(self.aggregation.get("default_limit", 50))

    @property
    def trending_min_volume(self) -> float:
        return float(self.aggregation.get("trending_min_volume", 1000))

    @property
    def high_liquidity_min(self) -> float:
        return float(self.aggregation.get("high_liquidity_min", 5000))

    @property
    def enabled_platforms(self) -> list[str]:
        return list(
            self.aggregation.get("platforms") or ["polymarket", "polkamarkets", "limitlesslabs"]
        )

    @property
    def gamma_api_base(self) -> str:
        return self.polymarket.get("gamma_api_base", "https://gamma-api.polymarket.com")

    @property
    def clob_api_base(self) -> str:
        return self.polymarket.get("clob_api_base", "https://clob.polymarket.com")

    @property
    def limitless_api_base(self) -> str:
        return self.limitless.get("api_base", "https://api.limitless.exchange")

    @property
    def limitless_page_size(self) -> int:
        return int(self.limitless.get("page_size", 25))

    @property
    def walletconnect_project_id(self) -> str | None:
        return os.environ.get(WALLETCONNECT_ENV) or self.wallet.get("walletconnect_project_id")

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
