"""
skincase.config — YAML Configuration Loader
============================================

Reads ``config.yaml`` for **infrastructure** settings: proxy trust, token
lifetime, rate-limit overrides and the permissions new accounts start with.
Secrets (``JWT_SECRET``, ``SESSION_SECRET``, ``DATABASE_URL``) never live
here; they come from the environment (see :mod:`skincase.api.deps`).

Usage::

    from skincase.config import load_config

    cfg = load_config()               # reads ./config.yaml by default
    print(cfg.app_name)               # "SkinCase"
    print(cfg.rate_limit_overrides)   # {"auth": (900, 5)}
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class SkincaseConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    app_name: str = "SkinCase"

    # Honour X-Forwarded-For when resolving the client IP (behind a proxy)
    trust_proxy: bool = False

    # Lifetime of issued access tokens
    jwt_ttl_hours: int = 12

    # policy name → (window_seconds, max_requests)
    rate_limit_overrides: dict[str, tuple[int, int]] = field(default_factory=dict)

    # Permissions granted to freshly registered accounts
    default_permissions: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> SkincaseConfig:
    """Read *path* and return a :class:`SkincaseConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  Defaults to the
        ``SKINCASE_CONFIG`` env var, then ``config.yaml`` in the cwd.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If a ``rate_limits`` entry is malformed.
    """
    if path is None:
        path = os.getenv("SKINCASE_CONFIG", "config.yaml")
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    overrides: dict[str, tuple[int, int]] = {}
    for name, entry in (raw.get("rate_limits") or {}).items():
        try:
            overrides[name] = (int(entry["window_seconds"]), int(entry["max_requests"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(
                f"rate_limits.{name} needs integer window_seconds and max_requests"
            ) from exc

    return SkincaseConfig(
        app_name=raw.get("app_name", "SkinCase"),
        trust_proxy=bool(raw.get("trust_proxy", False)),
        jwt_ttl_hours=int(raw.get("jwt_ttl_hours", 12)),
        rate_limit_overrides=overrides,
        default_permissions=tuple(raw.get("default_permissions") or ()),
    )
