"""
Configuration loading for head extraction.

Handles loading extraction parameters from config.yaml files.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULT_EXTRACTION_CONFIG: Dict[str, Any] = {
    "num_workers": None,  # None -> max(1, cpu_count - 1)
    "pool": "process",
    "file_timeout": None,
    "max_depth": 512,
    "max_nodes": 10_000_000,
    "show_progress": False,
}


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load full configuration from config.yaml.

    Args:
        config_path: Path to config.yaml file

    Returns:
        Dictionary with full configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
    """
    if config_path is None:
        config_path = Path("config.yaml")

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f)

    return config or {}


def load_extraction_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load the extraction section of config.yaml merged over the defaults.

    Args:
        config_path: Path to config.yaml file, or None for defaults only

    Returns:
        Dictionary with every key of DEFAULT_EXTRACTION_CONFIG present

    Raises:
        FileNotFoundError: If config_path is given but doesn't exist
        ValueError: If the pool type is unknown
    """
    extraction_config = dict(DEFAULT_EXTRACTION_CONFIG)
    if config_path is not None:
        config = load_config(config_path)
        extraction_config.update(config.get("extraction") or {})

    if extraction_config["pool"] not in ("process", "thread"):
        raise ValueError(f"Unknown pool type: {extraction_config['pool']}")

    return extraction_config
