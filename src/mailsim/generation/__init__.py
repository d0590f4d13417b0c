"""Message generation for MailSim conversations.

Modules:
    generator: MessageGenerator class and GenerationError
    models: Generation usage and result models
    prompts: Prompt templates and section builders
"""

from src.mailsim.generation.generator import (
    GenerationError,
    MessageGenerator,
    classify_llm_error,
)
from src.mailsim.generation.models import (
    GeneratedMessage,
    GenerationUsage,
    UsageSummary,
    summarize_usage,
)
from src.mailsim.generation.prompts import (
    GENERATE_MESSAGE_SYSTEM_PROMPT,
    build_system_prompt,
    build_turn_prompt,
    format_participant_list,
)

__all__ = [
    # Generator
    "GenerationError",
    "MessageGenerator",
    "classify_llm_error",
    # Models
    "GeneratedMessage",
    "GenerationUsage",
    "UsageSummary",
    "summarize_usage",
    # Prompts
    "GENERATE_MESSAGE_SYSTEM_PROMPT",
    "build_system_prompt",
    "build_turn_prompt",
    "format_participant_list",
]
