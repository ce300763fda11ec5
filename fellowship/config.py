"""
fellowship.config — YAML Configuration Loader
==============================================

This module reads ``config.yaml`` for **infrastructure-only** settings
(reference timezone, push relay, sweep batch size).  Secrets such as
``DATABASE_URL``, ``JWT_SECRET`` and ``CRON_SECRET`` come from the
environment (``.env``), never from this file.

Usage::

    from fellowship.config import load_config

    cfg = load_config()            # reads ./config.yaml by default
    print(cfg.app_name)            # "Fellowship"
    print(cfg.reference_timezone)  # "UTC"
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class FellowshipConfig:
    """Immutable configuration loaded from ``config.yaml``.

    ``reference_timezone`` is the single global clock used to decide what
    "today" and "yesterday" mean for streaks.  There is no per-user
    timezone.
    """

    # Identity
    app_name: str

    # Streaks
    reference_timezone: str = "UTC"

    # Push delivery: HTTP relay, used when no VAPID keys are in the environment
    push_relay_url: str | None = None
    push_timeout_seconds: float = 10.0

    # Scheduled engagement sweep
    engagement_batch_size: int = 50


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> FellowshipConfig:
    """Read *path* and return a :class:`FellowshipConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If ``reference_timezone`` is not a known IANA zone name.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    tz_name = raw.get("reference_timezone") or "UTC"
    try:
        ZoneInfo(tz_name)
    except (KeyError, ValueError) as exc:
        raise ValueError(f"Unknown reference_timezone: {tz_name!r}") from exc

    return FellowshipConfig(
        app_name=raw["app_name"],
        reference_timezone=tz_name,
        push_relay_url=raw.get("push_relay_url") or None,
        push_timeout_seconds=float(raw.get("push_timeout_seconds", 10.0)),
        engagement_batch_size=int(raw.get("engagement_batch_size", 50)),
    )
