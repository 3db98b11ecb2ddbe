import yaml
from pathlib import Path
from typing import Optional
from .models import AppConfig

def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model.

    With no path the built-in defaults are returned.
    """
    if config_path is None:
        return AppConfig()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping at the top level: {config_path}")

    # A bare 'encoder: hardware' is accepted as shorthand for the mode
    encoder = data.get("encoder")
    if isinstance(encoder, str):
        data["encoder"] = {"mode": encoder}

    return AppConfig(**data)
