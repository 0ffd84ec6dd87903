# PATH: config/__init__.py
"""
Configuration loading utilities for dexwatch.

YAML files live next to this module by default; every loader accepts an
alternative directory so tests and deployments can point elsewhere.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.exceptions import ConfigError


CONFIG_DIR = Path(__file__).parent


def load_yaml(filename: str, config_dir: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        filename: Name of file in config directory
        config_dir: Directory to read from (default: this package)

    Returns:
        Parsed YAML as dict
    """
    filepath = (config_dir or CONFIG_DIR) / filename
    if not filepath.exists():
        raise ConfigError(f"Config file not found: {filepath}", {"path": str(filepath)})

    with open(filepath, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {filepath}: {e}", {"path": str(filepath)})

    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {filepath} must be a mapping", {"path": str(filepath)})
    return data


def load_tokens(config_dir: Optional[Path] = None) -> Dict[str, Any]:
    """Load supported tokens configuration."""
    return load_yaml("tokens.yaml", config_dir)


def load_venues(config_dir: Optional[Path] = None) -> Dict[str, Any]:
    """Load venues configuration."""
    return load_yaml("venues.yaml", config_dir)


def load_chains(config_dir: Optional[Path] = None) -> Dict[str, Any]:
    """Load chains configuration."""
    return load_yaml("chains.yaml", config_dir)


def get_chain_config(chain_key: str, config_dir: Optional[Path] = None) -> Dict[str, Any]:
    """
    Get configuration for a specific chain.

    Args:
        chain_key: Chain identifier (e.g., 'ethereum')

    Returns:
        Chain configuration dict
    """
    chains = load_chains(config_dir)
    if chain_key not in chains:
        raise ConfigError(f"Unknown chain: {chain_key}", {"known": sorted(chains)})
    return chains[chain_key]
