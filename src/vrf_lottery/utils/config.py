"""
Configuration Management
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from dotenv import load_dotenv

from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = Path("config") / "lottery.conf"

# Environment prefix -> config section
ENV_SECTIONS = {
    "NETWORK_": "network",
    "LOTTERY_": "lottery",
    "KEEPER_": "keeper",
    "ORACLE_": "oracle",
    "FRONTEND_": "frontend",
    "DEPLOY_": "deploy",
}

DEFAULT_CONFIG: Dict[str, Any] = {
    "network": {
        "name": "hardhat",
    },
    "keeper": {
        "poll_interval_seconds": 1.0,
    },
    "oracle": {
        "fulfillment_delay_seconds": 0.0,
    },
    "frontend": {
        "update": False,
        "contract_addresses_file": "../lottery-front-end/constants/contractAddresses.json",
        "abi_file": "../lottery-front-end/constants/abi.json",
    },
    "deploy": {
        "output": "",
    },
}


def load_config(config_file: Optional[Union[str, Path]] = None, env_file: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Load configuration from defaults, a JSON file and environment variables"""
    config = json.loads(json.dumps(DEFAULT_CONFIG))

    path = Path(config_file) if config_file else DEFAULT_CONFIG_FILE
    if path.exists():
        try:
            with open(path, 'r') as f:
                file_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading config file {path}: {e}")
        else:
            _merge(config, file_config)
            logger.info(f"Loaded configuration from {path}")
    elif config_file:
        logger.warning(f"Config file {path} not found. Will only use defaults and environment variables.")

    # .env values only fill in variables that are not already exported
    load_dotenv(env_file)

    config = _apply_env_overrides(config)
    logger.debug(f"Configuration after applying environment overrides: {json.dumps(config, indent=2)}")
    return config


def _merge(config: Dict[str, Any], overrides: Dict[str, Any]) -> None:
    for section, values in overrides.items():
        if isinstance(values, dict) and isinstance(config.get(section), dict):
            config[section].update(values)
        else:
            config[section] = values


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration"""
    for key, value in os.environ.items():
        # bare switch kept for existing deploy environments
        if key == "UPDATE_FRONT_END":
            config.setdefault("frontend", {})["update"] = value
            continue

        for prefix, section in ENV_SECTIONS.items():
            if key.startswith(prefix):
                config.setdefault(section, {})[key[len(prefix):].lower()] = value
                break

    return config


def save_config(config: Dict[str, Any], config_file: Optional[Union[str, Path]] = None) -> Path:
    """Save configuration to file"""
    path = Path(config_file) if config_file else DEFAULT_CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'w') as f:
        json.dump(config, f, indent=2)

    logger.info(f"Configuration saved to {path}")
    return path


def get_config_value(config: Dict[str, Any], key_path: str, default=None):
    """Get configuration value by dot-separated key path"""
    keys = key_path.split('.')
    value = config

    try:
        for key in keys:
            value = value[key]
        return value
    except (KeyError, TypeError):
        return default


def as_bool(value: Any) -> bool:
    """Interpret config/env values such as "1", "true", "yes" as booleans."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "on")
