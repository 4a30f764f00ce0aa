import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "model": "anthropic",
    "max_diff_chars": 2000,  # per-file diff budget sent to the analysis model
    "github_timeout": 30,  # seconds per change-source call
    "analysis_timeout": 120,  # seconds per analysis call
    "host": "0.0.0.0",
    "port": 5000,
    "public_url": None,  # None = derive from host/port for the status endpoint
    "store": "memory",  # "memory" | "sqlite"
    "store_path": ".prhook.db",
}


def load_config(config_path: str = ".prhook.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prhook.yml in the current directory
      3. CLI argument overrides

    Secrets are never read from the file; they come from the environment.
    """
    config = dict(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ValueError(f"{config_path} must contain a mapping, got {type(file_config).__name__}")
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    config["webhook_secret"] = os.environ.get("WEBHOOK_SECRET")
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config


def webhook_url(config: dict) -> str:
    """Public URL GitHub should deliver webhooks to."""
    base = config.get("public_url")
    if not base:
        host = config["host"]
        if host in ("0.0.0.0", "::", ""):
            host = "localhost"
        base = f"http://{host}:{config['port']}"
    return base.rstrip("/") + "/webhook"
