import copy
import tomllib
from pathlib import Path
from typing import Any

DEFAULTS: dict[str, dict[str, Any]] = {
    "camera": {
        "index": 0,
        "preferred_width": 0,
        "preferred_height": 0,
        "mirror": False,
    },
    "qr": {
        "backend": "opencv",
        "dedupe": True,
    },
    "scan": {
        "target": "bytes",
        "timeout_seconds": 0,
    },
    "ui": {
        "show_preview": True,
    },
}


def load_config(path: str | Path | None = None) -> dict:
    """Load a TOML config and merge each section over the defaults."""
    config = copy.deepcopy(DEFAULTS)
    if path is None:
        return config
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")
    with config_path.open("rb") as f:
        loaded = tomllib.load(f)
    for section, values in loaded.items():
        if isinstance(values, dict):
            config.setdefault(section, {}).update(values)
        else:
            config[section] = values
    return config
