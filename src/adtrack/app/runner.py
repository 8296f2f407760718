from __future__ import annotations

from adtrack.core.config import load_config
from adtrack.features.bootstrap.service import AdTrackApp, bootstrap_app


def open_app(config_path: str) -> AdTrackApp:
    cfg = load_config(config_path)
    return bootstrap_app(cfg)
