"""
clubhub.config — YAML Configuration Loader
===========================================

Reads ``config.yaml`` for club identity and points tuning.  Secrets and
URLs (database, JWT, OAuth endpoints) stay in the environment / ``.env``.

Usage::

    from clubhub.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.club_name)         # "Tech Club"
    print(cfg.attendance_points) # 20
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


@dataclass(frozen=True, slots=True)
class ClubConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    club_name: str
    club_motto: str = ""

    # Dashboard
    dashboard_port: int = 8000

    # Points
    attendance_points: int = 20      # QR check-in / approved attendance
    weekly_checkin_points: int = 10

    # Sessions
    session_ttl_hours: int = 12
    intent_cookie_ttl_seconds: int = 300


def load_config(path: str | Path = "config.yaml") -> ClubConfig:
    """Read *path* and return a :class:`ClubConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If ``club_name`` is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return ClubConfig(
        club_name=raw["club_name"],
        club_motto=raw.get("club_motto", ""),
        dashboard_port=int(raw.get("dashboard_port", 8000)),
        attendance_points=int(raw.get("attendance_points", 20)),
        weekly_checkin_points=int(raw.get("weekly_checkin_points", 10)),
        session_ttl_hours=int(raw.get("session_ttl_hours", 12)),
        intent_cookie_ttl_seconds=int(raw.get("intent_cookie_ttl_seconds", 300)),
    )
