"""Configuration management for zonewalker.

Loads configuration from config.yaml, with support for CLI overrides
and environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field


class DNSConfig(BaseModel):
    """Resolver configuration."""

    resolvers: List[str] = Field(default_factory=list)
    mode: Literal["recursive", "stub"] = "recursive"
    timeout: float = Field(1.0, gt=0)
    transport: Literal["udp", "tcp"] = "udp"
    port: int = 53
    concurrency: int = Field(64, ge=1)
    require_ad: bool = False
    discover_nameservers: bool = True
    doh_enabled: bool = False
    doh_server: str = "https://cloudflare-dns.com/dns-query"


class WalkConfig(BaseModel):
    """Zone walk parameters."""

    parallel: int = Field(1, ge=1, le=36)
    rps: float = Field(10.0, gt=0)
    start: Optional[str] = None


class RetryConfig(BaseModel):
    """Backoff applied to failed probes."""

    initial_delay: float = Field(1.0, ge=0)
    max_delay: float = Field(60.0, ge=0)
    backoff_factor: float = Field(1.5, ge=1)


class GeneralConfig(BaseModel):
    """General runtime configuration."""

    log_file: Optional[str] = None
    verbose: bool = False


class Config(BaseModel):
    """Top-level zonewalker configuration."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    dns: DNSConfig = Field(default_factory=DNSConfig)
    walk: WalkConfig = Field(default_factory=WalkConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from a YAML file, applying environment variable overrides.

    Args:
        config_path: Optional path to a YAML configuration file. Defaults to
                     ``config.yaml`` in the current working directory.

    Returns:
        Populated :class:`Config` instance.
    """
    path = Path(config_path) if config_path else Path("config.yaml")

    raw: Dict[str, Any] = {}
    if path.exists():
        with path.open("r") as fh:
            raw = yaml.safe_load(fh) or {}

    # Environment variable overrides (ZONEWALKER__SECTION__KEY=value)
    _apply_env_overrides(raw)

    return Config(**raw)


def _apply_env_overrides(raw: Dict[str, Any]) -> None:
    """Mutate *raw* in-place with values from environment variables.

    Environment variables follow the pattern ``ZONEWALKER__<SECTION>__<KEY>``.
    For example ``ZONEWALKER__WALK__RPS=20``.  List fields take a
    comma-separated value.
    """
    prefix = "ZONEWALKER__"
    for env_key, env_val in os.environ.items():
        if not env_key.startswith(prefix):
            continue
        parts = env_key[len(prefix):].lower().split("__")
        if len(parts) == 2:
            section, key = parts
            value: Any = env_val
            if section == "dns" and key == "resolvers":
                value = [item.strip() for item in env_val.split(",") if item.strip()]
            raw.setdefault(section, {})[key] = value
