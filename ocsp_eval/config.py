import json
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

from .errors import ConfigError
from .ocsp_client import default_http_client, new_http_client


@dataclass
class Config:
    """Configuration for OCSP checks and evaluations. The defaults are sensible."""

    # HTTP client for OCSP queries; None means the shared default client
    http_client: Optional[requests.Session] = None
    # User-Agent for OCSP queries; empty means no User-Agent header is sent
    user_agent: str = ""
    log_callback: Optional[Callable[[str], None]] = None

    def get_http_client(self) -> requests.Session:
        if self.http_client is not None:
            return self.http_client
        return default_http_client

    def log(self, text: str) -> None:
        if self.log_callback:
            self.log_callback(text)


def resolve_config(config: Optional[Config]) -> Config:
    return config if config is not None else Config()


def config_from_dict(data: Dict[str, Any], config: Optional[Config] = None) -> Config:
    """Apply known keys of a configuration mapping; unknown keys are ignored"""
    config = config if config is not None else Config()
    if not isinstance(data, dict):
        raise ConfigError("configuration must be a JSON object")

    if "user_agent" in data:
        user_agent = data["user_agent"]
        if user_agent is not None and not isinstance(user_agent, str):
            raise ConfigError("user_agent must be a string")
        config.user_agent = user_agent or ""

    if "retries" in data:
        retries = data["retries"]
        if isinstance(retries, bool) or not isinstance(retries, int) or retries < 0:
            raise ConfigError("retries must be a non-negative integer")
        config.http_client = new_http_client(retries)

    return config


def load_config(path: str, config: Optional[Config] = None) -> Config:
    """Load configuration from a JSON file. A missing file leaves the defaults in place."""
    config = config if config is not None else Config()
    if not os.path.exists(path):
        return config
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Error loading config from {path}: {exc}") from exc
    return config_from_dict(data, config)
