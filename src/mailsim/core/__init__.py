"""Core infrastructure for MailSim.

This package contains foundational utilities shared across MailSim
components: LLM configuration and pricing, and the clock used for
scheduling.

Modules:
    llm_config: Factory for creating LLM instances and estimating call cost
    clock: Clock protocol and the system implementation
"""

from src.mailsim.core.clock import Clock, SystemClock
from src.mailsim.core.llm_config import (
    LLMConfig,
    LLMFactory,
    LLMProvider,
    ModelPricing,
    UnsupportedModelError,
    estimate_cost,
    get_pricing,
)

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    # LLM Configuration
    "LLMConfig",
    "LLMFactory",
    "LLMProvider",
    "ModelPricing",
    "UnsupportedModelError",
    "estimate_cost",
    "get_pricing",
]
