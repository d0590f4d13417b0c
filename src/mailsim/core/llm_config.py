"""LLM configuration, factory and pricing for message generation.

This module creates LangChain chat model instances for the supported
providers (OpenAI, Anthropic, Google Gemini and local Ollama) and estimates
the cost of a generation call from its token usage.

Key Classes:
    LLMProvider: Enum of supported LLM providers.
    LLMConfig: Configuration dataclass for LLM creation.
    LLMFactory: Factory class for creating LLM instances.
    ModelPricing: Per-million-token prices for a model family.
    UnsupportedModelError: Exception for unrecognized model identifiers.

Supported Model Prefixes:
    - OpenAI: ``gpt-*``, ``o1-*``, ``o3-*``, ``chatgpt-*``
    - Anthropic: ``claude-*``
    - Google: ``gemini-*``
    - Ollama: ``ollama/*`` (e.g., ``ollama/llama3.2``)

Example:
    >>> from src.mailsim.core.llm_config import LLMFactory, estimate_cost
    >>> llm = LLMFactory.create("gpt-4o-mini", temperature=0.8, max_tokens=200)
    >>> estimate_cost("gpt-4o-mini", input_tokens=1000, output_tokens=100)
    0.00021
"""

import logging
import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.8


class LLMProvider(Enum):
    """Supported LLM providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    OLLAMA = "ollama"


class UnsupportedModelError(Exception):
    """Raised when a model identifier is not recognized.

    Attributes:
        model: The unrecognized model identifier.
    """

    def __init__(self, model: str) -> None:
        self.model = model
        prefixes = ", ".join(p + "*" for p in LLMFactory.get_supported_prefixes())
        super().__init__(
            f"Unsupported model identifier: '{model}'. Supported prefixes: {prefixes}"
        )


# OpenAI reasoning models reject the temperature parameter
_OPENAI_REASONING_MODELS = frozenset({"o1", "o1-mini", "o1-preview", "o3", "o3-mini"})


def _is_reasoning_model(model: str) -> bool:
    """Check if a model belongs to the OpenAI o1/o3 reasoning family."""
    return any(
        model == name or model.startswith(f"{name}-")
        for name in _OPENAI_REASONING_MODELS
    )


@dataclass(frozen=True)
class LLMConfig:
    """Configuration for creating an LLM instance.

    Attributes:
        model: Model identifier string (e.g., "gpt-4o-mini").
        temperature: Sampling temperature. Ignored for OpenAI reasoning models.
        max_tokens: Optional cap on generated tokens, mapped onto each
            provider's own parameter name.
        base_url: Optional API endpoint override (Azure, vLLM, remote Ollama).
        extra_kwargs: Additional provider-specific constructor arguments.
    """

    model: str
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int | None = None
    base_url: str | None = None
    extra_kwargs: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.model:
            raise ValueError("Model identifier cannot be empty")
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError(
                f"Temperature must be between 0.0 and 2.0, got {self.temperature}"
            )
        if self.max_tokens is not None and self.max_tokens < 1:
            raise ValueError(f"max_tokens must be positive, got {self.max_tokens}")


class LLMFactory:
    """Factory for creating LangChain chat model instances.

    The provider is chosen by prefix matching on the model identifier.

    Example:
        >>> llm = LLMFactory.create("claude-3-5-haiku-latest", max_tokens=200)
        >>> config = LLMConfig(model="ollama/llama3.2", base_url="http://gpu:11434")
        >>> llm = LLMFactory.create_from_config(config)
    """

    _PREFIX_TO_PROVIDER: dict[str, LLMProvider] = {
        "gpt-": LLMProvider.OPENAI,
        "o1": LLMProvider.OPENAI,
        "o3": LLMProvider.OPENAI,
        "chatgpt-": LLMProvider.OPENAI,
        "claude-": LLMProvider.ANTHROPIC,
        "gemini-": LLMProvider.GOOGLE,
        "ollama/": LLMProvider.OLLAMA,
    }

    # Keyword each provider uses for the generated-token cap
    _MAX_TOKENS_KWARG: dict[LLMProvider, str] = {
        LLMProvider.OPENAI: "max_tokens",
        LLMProvider.ANTHROPIC: "max_tokens",
        LLMProvider.GOOGLE: "max_output_tokens",
        LLMProvider.OLLAMA: "num_predict",
    }

    @classmethod
    def detect_provider(cls, model: str) -> LLMProvider:
        """Detect the LLM provider from a model identifier string.

        Args:
            model: Model identifier (e.g., "gpt-4o-mini").

        Returns:
            The detected LLMProvider.

        Raises:
            UnsupportedModelError: If no known prefix matches.
        """
        model_lower = (model or "").lower()
        if model_lower:
            for prefix, provider in cls._PREFIX_TO_PROVIDER.items():
                if model_lower.startswith(prefix):
                    return provider
        raise UnsupportedModelError(model)

    @classmethod
    def create(
        cls,
        model: str,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int | None = None,
        base_url: str | None = None,
        **extra_kwargs: Any,
    ) -> BaseChatModel:
        """Create an LLM instance from parameters.

        Args:
            model: Model identifier.
            temperature: Sampling temperature.
            max_tokens: Optional cap on generated tokens.
            base_url: Optional API endpoint override.
            **extra_kwargs: Additional provider-specific arguments.

        Returns:
            Configured LangChain BaseChatModel instance.

        Raises:
            UnsupportedModelError: If the model identifier is not recognized.
            ValueError: If configuration parameters are invalid.
        """
        config = LLMConfig(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            base_url=base_url,
            extra_kwargs=extra_kwargs,
        )
        return cls.create_from_config(config)

    @classmethod
    def create_from_config(cls, config: LLMConfig) -> BaseChatModel:
        """Create an LLM instance from a configuration object."""
        provider = cls.detect_provider(config.model)
        kwargs: dict[str, Any] = {"model": config.model, **config.extra_kwargs}

        if config.max_tokens is not None:
            kwargs[cls._MAX_TOKENS_KWARG[provider]] = config.max_tokens

        if provider == LLMProvider.OPENAI:
            if _is_reasoning_model(config.model):
                if config.temperature != DEFAULT_TEMPERATURE:
                    warnings.warn(
                        f"Model '{config.model}' is a reasoning model that does not "
                        f"support temperature; {config.temperature} will be ignored.",
                        UserWarning,
                        stacklevel=3,
                    )
            else:
                kwargs["temperature"] = config.temperature
            if config.base_url is not None:
                kwargs["base_url"] = config.base_url
            logger.debug(f"Creating OpenAI model: {config.model}")
            return ChatOpenAI(**kwargs)

        kwargs["temperature"] = config.temperature

        if provider == LLMProvider.ANTHROPIC:
            if config.base_url is not None:
                kwargs["base_url"] = config.base_url
            logger.debug(f"Creating Anthropic model: {config.model}")
            return ChatAnthropic(**kwargs)

        if provider == LLMProvider.GOOGLE:
            if config.base_url is not None:
                logger.debug(
                    f"Base URL ignored for Google model '{config.model}' - "
                    "Google does not support custom base URLs."
                )
            logger.debug(f"Creating Google model: {config.model}")
            return ChatGoogleGenerativeAI(**kwargs)

        # Ollama: strip the routing prefix to get the local model name
        kwargs["model"] = config.model[len("ollama/"):]
        if config.base_url is not None:
            kwargs["base_url"] = config.base_url
        logger.debug(f"Creating Ollama model: {kwargs['model']}")
        return ChatOllama(**kwargs)

    @classmethod
    def get_supported_prefixes(cls) -> list[str]:
        """Get a list of all supported model prefixes."""
        return list(cls._PREFIX_TO_PROVIDER.keys())


# =============================================================================
# Pricing
# =============================================================================


@dataclass(frozen=True)
class ModelPricing:
    """Prices in USD per one million tokens."""

    input_per_million: float
    output_per_million: float


# Longest matching prefix wins
MODEL_PRICING: dict[str, ModelPricing] = {
    "gpt-4o-mini": ModelPricing(0.15, 0.60),
    "gpt-4o": ModelPricing(2.50, 10.00),
    "gpt-4.1-nano": ModelPricing(0.10, 0.40),
    "gpt-4.1-mini": ModelPricing(0.40, 1.60),
    "gpt-4.1": ModelPricing(2.00, 8.00),
    "gpt-3.5-turbo": ModelPricing(0.50, 1.50),
    "o3-mini": ModelPricing(1.10, 4.40),
    "claude-3-5-haiku": ModelPricing(0.80, 4.00),
    "claude-3-haiku": ModelPricing(0.25, 1.25),
    "claude-3-5-sonnet": ModelPricing(3.00, 15.00),
    "claude-sonnet-4": ModelPricing(3.00, 15.00),
    "gemini-1.5-flash": ModelPricing(0.075, 0.30),
    "gemini-2.0-flash": ModelPricing(0.10, 0.40),
    "ollama/": ModelPricing(0.0, 0.0),
}


def get_pricing(model: str) -> ModelPricing | None:
    """Look up pricing for a model by longest matching prefix.

    Args:
        model: Model identifier.

    Returns:
        The matching ModelPricing, or None for unknown models.
    """
    model_lower = model.lower()
    matches = [prefix for prefix in MODEL_PRICING if model_lower.startswith(prefix)]
    if not matches:
        return None
    return MODEL_PRICING[max(matches, key=len)]


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float | None:
    """Estimate the USD cost of a single generation call.

    Returns None when the model has no known pricing, so callers can tell
    "free" apart from "unknown".
    """
    pricing = get_pricing(model)
    if pricing is None:
        return None
    cost = (
        input_tokens * pricing.input_per_million
        + output_tokens * pricing.output_per_million
    ) / 1_000_000
    return round(cost, 8)
