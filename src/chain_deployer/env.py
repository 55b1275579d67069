"""Projection of network configuration into a subprocess environment."""

from __future__ import annotations

from typing import Any, Dict, Mapping


def clear_prefix(env: Mapping[str, str], prefix: str) -> Dict[str, str]:
    """
    Remove the ``<prefix>__`` scope from every key that carries it.

    ``{"MAINNET__X": "1", "Y": "2"}`` with prefix ``MAINNET`` becomes
    ``{"X": "1", "Y": "2"}``. Unscoped keys pass through untouched; when a
    cleared key collides with an existing one, the later key in iteration
    order wins.
    """
    marker = f"{prefix}__"
    result: Dict[str, str] = {}
    for key, value in env.items():
        result[key.replace(marker, "", 1) if marker in key else key] = value
    return result


def scoped_keys(env: Mapping[str, str], prefix: str) -> Dict[str, str]:
    """Return only the keys scoped to ``prefix`` with the scope cleared."""
    marker = f"{prefix}__"
    return clear_prefix({k: v for k, v in env.items() if marker in k}, prefix)


def to_env_value(value: Any) -> str | None:
    """Convert a scalar config value to its environment form, or None to drop it."""
    if value is None or isinstance(value, (list, dict, tuple)):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def project_env(config: Mapping[str, Any]) -> Dict[str, str]:
    """Keep the scalar fields of ``config`` as strings, dropping iterators and sentinels."""
    env: Dict[str, str] = {}
    for key, value in config.items():
        converted = to_env_value(value)
        if converted is not None:
            env[key] = converted
    return env
