import os
import yaml
from pathlib import Path
from typing import Optional, Mapping
from vjoin.config.models import AppConfig

STORAGE_URL_ENV = "VJOIN_STORAGE_URL"
STORAGE_KEY_ENV = "VJOIN_STORAGE_KEY"

def load_config(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Loads AppConfig from YAML, then applies storage credentials from the environment.

    A missing file yields the built-in defaults.
    """
    data = {}
    if path is not None and Path(path).exists():
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping at top level")

    env = os.environ if environ is None else environ
    storage = dict(data.get("storage") or {})
    if env.get(STORAGE_URL_ENV):
        storage["url"] = env[STORAGE_URL_ENV]
    if env.get(STORAGE_KEY_ENV):
        storage["key"] = env[STORAGE_KEY_ENV]
    if storage:
        data["storage"] = storage

    return AppConfig(**data)
