"""Shared settings for MailSim.

Modules:
    config: Pydantic-settings configuration model and validation helpers
"""

from __future__ import annotations

from src.common.settings.config import MailSimConfig, validate_config

__all__ = [
    "MailSimConfig",
    "validate_config",
]
