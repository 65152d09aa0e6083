"""Internationalization utilities."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from cuebracket.paths import get_i18n_dir

# Cache for loaded strings to avoid repeated file I/O
_strings_cache: Dict[str, Dict[str, Any]] = {}

# Supported languages
SUPPORTED_LANGUAGES = ["en", "es"]
DEFAULT_LANGUAGE = "en"

# Language selected by configuration; None means "ask the environment"
_active_language: Optional[str] = None


def _get_i18n_dir() -> Path:
    """Get the i18n directory path."""
    return get_i18n_dir()


def load_strings(lang: str) -> Dict[str, Any]:
    """
    Load strings from i18n/strings_{lang}.yaml.

    Args:
        lang: Language code (en, es)

    Returns:
        Dictionary with all strings for the given language

    Raises:
        ValueError: If language is not supported
        FileNotFoundError: If the strings file doesn't exist
    """
    if lang not in SUPPORTED_LANGUAGES:
        raise ValueError(
            f"Language '{lang}' not supported. Supported languages: {SUPPORTED_LANGUAGES}"
        )

    if lang in _strings_cache:
        return _strings_cache[lang]

    i18n_dir = _get_i18n_dir()
    strings_file = i18n_dir / f"strings_{lang}.yaml"

    if not strings_file.exists():
        raise FileNotFoundError(f"Strings file not found: {strings_file}")

    with open(strings_file, "r", encoding="utf-8") as f:
        strings = yaml.safe_load(f)

    _strings_cache[lang] = strings or {}

    return _strings_cache[lang]


def _lookup(strings: Dict[str, Any], key: str) -> Optional[str]:
    """Walk a dot-notation key through nested dicts."""
    value: Any = strings
    for part in key.split("."):
        if isinstance(value, dict) and part in value:
            value = value[part]
        else:
            return None
    return value if isinstance(value, str) else None


def get_string(key: str, lang: Optional[str] = None, **kwargs) -> str:
    """
    Get a string by key for the specified language.

    Supports dot notation for nested keys (e.g., "rejections.frozen_round").

    Args:
        key: String key (supports dot notation for nested keys)
        lang: Language code (en, es); defaults to the active language
        **kwargs: Format variables to substitute in the string

    Returns:
        The translated string, or the key itself if not found

    Examples:
        >>> get_string("labels.staging_pool", "en")
        'the staging pool'
        >>> get_string("success.create_round", "en", name="Semi Final")
        'Round "Semi Final" created.'
    """
    lang = lang or get_language()

    value = None
    try:
        value = _lookup(load_strings(lang), key)
    except (ValueError, FileNotFoundError):
        value = None

    # Fall back to English for missing keys or catalogs
    if value is None and lang != "en":
        try:
            value = _lookup(load_strings("en"), key)
        except (ValueError, FileNotFoundError):
            value = None

    if value is None:
        return key

    if kwargs:
        try:
            return value.format(**kwargs)
        except (KeyError, ValueError, IndexError):
            return value

    return value


def clear_cache() -> None:
    """Clear the strings cache. Useful for testing or reloading strings."""
    _strings_cache.clear()


def get_language_from_env() -> str:
    """
    Get the language from environment variable CUEBRACKET_LANG.

    Returns:
        Language code (defaults to DEFAULT_LANGUAGE if not set or invalid)
    """
    env_lang = os.environ.get("CUEBRACKET_LANG", DEFAULT_LANGUAGE)
    if env_lang in SUPPORTED_LANGUAGES:
        return env_lang
    return DEFAULT_LANGUAGE


def set_language(lang: Optional[str]) -> None:
    """Select the language used when no explicit one is passed.

    Passing None restores the environment-driven default.
    """
    global _active_language
    if lang is not None and lang not in SUPPORTED_LANGUAGES:
        raise ValueError(
            f"Language '{lang}' not supported. Supported languages: {SUPPORTED_LANGUAGES}"
        )
    _active_language = lang


def get_language() -> str:
    """Return the configured language, or the environment's."""
    return _active_language or get_language_from_env()
