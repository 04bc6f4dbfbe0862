"""Process-wide logging setup for CLI and service entry points."""

from __future__ import annotations

import logging
import os

_FORMAT = "ts=%(asctime)s level=%(levelname)s component=%(name)s msg=%(message)s"


def configure_logging(level: str | None = None, env: dict[str, str] | None = None) -> None:
    env_map = os.environ if env is None else env
    resolved = (level or env_map.get("HACHIKO_LOG_LEVEL") or "INFO").strip().upper()
    root = logging.getLogger("hachiko")
    root.setLevel(getattr(logging, resolved, logging.INFO))
    if any(getattr(handler, "_hachiko", False) for handler in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler._hachiko = True  # type: ignore[attr-defined]
    root.addHandler(handler)
