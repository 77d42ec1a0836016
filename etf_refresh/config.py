from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel


class ConfigError(Exception):
    pass


class RunConfig(BaseModel):
    batch_size: int = 5
    interval_minutes: int = 60
    timezone: str = "America/New_York"


class ApiConfig(BaseModel):
    base_url: str = "https://www.alphavantage.co/query"
    request_timeout_s: int = 30
    key_env: str = "ALPHA_VANTAGE_API_KEY"


class DatabaseConfig(BaseModel):
    path: str = "data/etf_refresh.sqlite"


class AppConfig(BaseModel):
    run: RunConfig = RunConfig()
    api: ApiConfig = ApiConfig()
    database: DatabaseConfig = DatabaseConfig()


def load_config(path: str | Path) -> AppConfig:
    data: Dict[str, Any] = {}
    config_path = Path(path)
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle)
            if isinstance(loaded, dict):
                data = loaded
    config = AppConfig(**data)
    if config.run.batch_size < 1:
        raise ConfigError("run.batch_size must be at least 1")
    return config


def resolve_api_key(config: AppConfig, environ: Optional[Mapping[str, str]] = None) -> str:
    env = os.environ if environ is None else environ
    api_key = (env.get(config.api.key_env) or "").strip()
    if not api_key:
        raise ConfigError(f"{config.api.key_env} is not set")
    return api_key
