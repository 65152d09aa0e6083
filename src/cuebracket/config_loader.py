"""Configuration loader and validator."""

from pathlib import Path
from typing import Any

import yaml

from cuebracket.exceptions import ConfigError
from cuebracket.policy import ProgressionPolicy
from cuebracket.ranking import MAX_RANKING_SIZE
from cuebracket.rounds import DEFAULT_FIRST_ROUND_NAME


POLICY_KEYS = (
    "require_completed_match_to_advance",
    "allow_skipping_active_rounds",
    "limit_winner_backtrack",
    "enforce_parity",
    "parity_on_pool_moves",
)


def load_config(path: str) -> dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        path: Path to YAML config file

    Returns:
        Dictionary with configuration values

    Raises:
        ConfigError: If file not found or invalid YAML
    """
    config_file = Path(path)

    if not config_file.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}")

    if config is None:
        raise ConfigError("Config file is empty")
    if not isinstance(config, dict):
        raise ConfigError("Config file must contain a mapping")

    return config


def validate_config(config: dict[str, Any]) -> dict[str, Any]:
    """Validate configuration values.

    Args:
        config: Configuration dictionary (may be empty for all defaults)

    Returns:
        Validated and normalized configuration

    Raises:
        ConfigError: If validation fails
    """
    validated: dict[str, Any] = {}

    # Language (optional, default 'en')
    lang = config.get("lang", "en")
    if lang not in ("en", "es"):
        raise ConfigError(f"lang must be 'en' or 'es', got '{lang}'")
    validated["lang"] = lang

    # Random seed (optional, None = unseeded shuffles)
    seed = config.get("random_seed")
    if seed is not None and (not isinstance(seed, int) or isinstance(seed, bool)):
        raise ConfigError("random_seed must be an integer")
    validated["random_seed"] = seed

    # Backend timeout in seconds (optional, default 30)
    timeout = config.get("request_timeout", 30)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError("request_timeout must be a positive number")
    validated["request_timeout"] = float(timeout)

    # Ranking size (optional, 1..5)
    size = config.get("ranking_size", MAX_RANKING_SIZE)
    if not isinstance(size, int) or not 1 <= size <= MAX_RANKING_SIZE:
        raise ConfigError(f"ranking_size must be between 1 and {MAX_RANKING_SIZE}, got {size}")
    validated["ranking_size"] = size

    first_round = config.get("first_round_name", DEFAULT_FIRST_ROUND_NAME)
    if not isinstance(first_round, str) or not first_round.strip():
        raise ConfigError("first_round_name must be a non-empty string")
    validated["first_round_name"] = first_round.strip()

    # Backend
    backend = config.get("backend") or {}
    if not isinstance(backend, dict):
        raise ConfigError("backend must be a dictionary")
    mode = backend.get("mode", "local")
    if mode not in ("local", "http"):
        raise ConfigError(f"backend.mode must be 'local' or 'http', got '{mode}'")
    if mode == "http" and not backend.get("base_url"):
        raise ConfigError("backend.base_url is required when backend.mode is 'http'")
    validated["backend"] = {
        "mode": mode,
        "base_url": backend.get("base_url"),
        "token": backend.get("token"),
    }

    # Local database (optional, None = .cuebracket/cuebracket.sqlite in the working dir)
    db_path = config.get("db_path")
    validated["db_path"] = str(db_path) if db_path else None

    # Progression policy
    policy = config.get("policy") or {}
    if not isinstance(policy, dict):
        raise ConfigError("policy must be a dictionary")
    unknown = set(policy) - set(POLICY_KEYS)
    if unknown:
        raise ConfigError(f"Unknown policy option(s): {', '.join(sorted(unknown))}")
    for key, value in policy.items():
        if not isinstance(value, bool):
            raise ConfigError(f"policy.{key} must be true or false")
    validated["policy"] = ProgressionPolicy.from_dict(policy)

    return validated


def load_and_validate_config(path: str) -> dict[str, Any]:
    """Load and validate configuration in one step.

    Args:
        path: Path to YAML config file

    Returns:
        Validated configuration dictionary

    Raises:
        ConfigError: If loading or validation fails
    """
    config = load_config(path)
    return validate_config(config)
