import copy
import json
import logging
import os
import sys
from pathlib import Path

from treemap_layout import MIN_PARTITION_DIMENSION

logger = logging.getLogger(__name__)

# Frozen builds keep config.json beside the executable, source runs beside this file
if getattr(sys, 'frozen', False):
    CONFIG_FILE = Path(sys.executable).parent / "config.json"
else:
    CONFIG_FILE = Path(__file__).parent / "config.json"

CONFIG_ENV = "REVENUE_HEATMAP_CONFIG"

DEFAULT_CONFIG = {
    "top_n": 8,
    "min_dimension": MIN_PARTITION_DIMENSION,
    "window_size": {"width": 960, "height": 600},
    "window_position": None,
}


def config_path(path=None):
    if path is not None:
        return Path(path)
    env_path = os.getenv(CONFIG_ENV)
    if env_path:
        return Path(env_path)
    return CONFIG_FILE


def load_config(path=None):
    """Defaults overlaid with whatever the config file holds."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    target = config_path(path)
    if not target.exists():
        return config

    try:
        with open(target, "r", encoding="utf-8") as f:
            stored = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not read config %s: %s", target, e)
        return config

    if not isinstance(stored, dict):
        logger.warning("Ignoring config %s: expected a JSON object", target)
        return config

    config.update(stored)
    return config


def save_config(config, path=None):
    target = config_path(path)
    try:
        with open(target, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
    except OSError as e:
        logger.warning("Could not save config %s: %s", target, e)
        return False
    return True
