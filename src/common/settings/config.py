"""MailSim configuration model.

This module provides the Pydantic-based settings model for MailSim, with
support for CLI argument parsing and environment variable loading.

Configuration Sources (in order of precedence, highest first):
    1. Explicit constructor arguments
    2. CLI arguments (via from_cli_args / from_parsed_args)
    3. Environment variables (automatic via pydantic-settings)
    4. Default values

Environment Variables:
    Environment variables are prefixed with "MAILSIM_". Variable names are
    derived from field names in SCREAMING_SNAKE_CASE. The spreadsheet
    credentials are also read from the unprefixed GOOGLE_SHEETS_CREDENTIALS.

    Examples:
        MAILSIM_LOG_LEVEL=DEBUG
        MAILSIM_DATA_FILE=/var/lib/mailsim/data.json
        MAILSIM_GENERATION_MODEL=claude-3-5-haiku-latest
        GOOGLE_SHEETS_CREDENTIALS='{"type": "service_account", ...}'

CLI Arguments:
    --log-level: Logging level (default: INFO)
    --data-file: Path of the local JSON data file
    --model: LLM model used for message generation
    --spreadsheet-id: Google Sheets spreadsheet to mirror state into

Example:
    >>> from src.common.settings.config import MailSimConfig
    >>> config = MailSimConfig.from_cli_args(["--model", "gpt-4o"])
    >>> config.generation_model
    'gpt-4o'
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Literal, Self, Sequence

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# Settings Model
# =============================================================================


class MailSimConfig(BaseSettings):
    """Runtime configuration for MailSim.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        data_file: Path of the JSON file holding accounts and conversations.
        generation_model: LLM model identifier for message generation.
        generation_temperature: Sampling temperature for message generation.
        generation_max_tokens: Upper bound on tokens per generated message.
        smtp_timeout: Connection, greeting and socket timeout in seconds.
        verify_smtp_dns: Whether to resolve the SMTP host before connecting.
        spreadsheet_id: Google Sheets spreadsheet used as a mirror. If None
            and credentials are configured, a new spreadsheet is created on
            first sync.
        google_sheets_credentials: Service-account JSON for the Sheets API.
            Stored as SecretStr to prevent accidental logging.

    Example:
        >>> config = MailSimConfig(smtp_timeout=30.0)
        >>> config.smtp_timeout
        30.0
        >>> config.sheets_enabled
        False
    """

    model_config = SettingsConfigDict(
        env_prefix="MAILSIM_",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    data_file: Path = Field(
        default=Path("mailsim_data.json"),
        description="Path of the local JSON data file",
    )
    generation_model: str = Field(
        default="gpt-4o-mini",
        description="LLM model used for message generation",
    )
    generation_temperature: float = Field(
        default=0.8,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for message generation",
    )
    generation_max_tokens: int = Field(
        default=200,
        ge=1,
        description="Maximum tokens per generated message",
    )
    smtp_timeout: float = Field(
        default=10.0,
        gt=0,
        description="SMTP connection timeout in seconds",
    )
    verify_smtp_dns: bool = Field(
        default=True,
        description="Resolve the SMTP host before connecting",
    )
    spreadsheet_id: str | None = Field(
        default=None,
        description="Google Sheets spreadsheet to mirror state into",
    )
    google_sheets_credentials: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "google_sheets_credentials",
            "mailsim_google_sheets_credentials",
        ),
        description="Service-account JSON for the Google Sheets API",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> str:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    @property
    def sheets_enabled(self) -> bool:
        """Whether state should be mirrored to Google Sheets."""
        return self.google_sheets_credentials is not None

    @classmethod
    def from_cli_args(
        cls,
        args: Sequence[str] | None = None,
        **overrides: Any,
    ) -> Self:
        """Create configuration from CLI arguments.

        Parses command-line arguments and combines them with environment
        variables and defaults. Explicit overrides take highest precedence.
        Unknown arguments are ignored.

        Args:
            args: Command-line arguments to parse. If None, uses sys.argv[1:].
            **overrides: Additional keyword arguments that override all other
                sources.

        Returns:
            A new configuration instance.
        """
        parser = argparse.ArgumentParser(
            description="MailSim Configuration",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        )
        cls.add_arguments(parser)
        parsed, _ = parser.parse_known_args(args)
        return cls.from_parsed_args(parsed, **overrides)

    @classmethod
    def from_parsed_args(cls, parsed: argparse.Namespace, **overrides: Any) -> Self:
        """Create configuration from an already-parsed namespace.

        Used by front ends that register the configuration arguments on
        their own parser via add_arguments().

        Args:
            parsed: Namespace produced by a parser set up with add_arguments().
            **overrides: Values that override all other sources.

        Returns:
            A new configuration instance.
        """
        cli_values = cls._parsed_args_to_dict(parsed)

        # Filter out None values so they don't override environment defaults
        cli_values = {k: v for k, v in cli_values.items() if v is not None}

        merged = {**cli_values, **overrides}
        return cls(**merged)

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        """Register the configuration arguments on a parser.

        Args:
            parser: Parser to extend.
        """
        parser.add_argument(
            "--log-level",
            type=str.upper,
            default=None,
            dest="log_level",
            choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            help="Logging level",
        )
        parser.add_argument(
            "--data-file",
            type=Path,
            default=None,
            dest="data_file",
            help="Path of the local JSON data file",
        )
        parser.add_argument(
            "--model",
            type=str,
            default=None,
            dest="generation_model",
            help="LLM model used for message generation",
        )
        parser.add_argument(
            "--spreadsheet-id",
            type=str,
            default=None,
            dest="spreadsheet_id",
            help="Google Sheets spreadsheet to mirror state into",
        )

    @classmethod
    def _parsed_args_to_dict(cls, parsed: argparse.Namespace) -> dict[str, Any]:
        """Convert parsed arguments to a dictionary of config values."""
        return {
            "log_level": getattr(parsed, "log_level", None),
            "data_file": getattr(parsed, "data_file", None),
            "generation_model": getattr(parsed, "generation_model", None),
            "spreadsheet_id": getattr(parsed, "spreadsheet_id", None),
        }


# =============================================================================
# Configuration Utilities
# =============================================================================


def validate_config(config: MailSimConfig) -> list[str]:
    """Validate a configuration and return any warnings.

    Performs checks beyond Pydantic's built-in validation for settings that
    don't prevent operation but are likely mistakes.

    Args:
        config: The configuration to validate.

    Returns:
        A list of warning messages. Empty if no issues found.

    Example:
        >>> config = MailSimConfig(spreadsheet_id="abc123")
        >>> warnings = validate_config(config)
        >>> "credentials" in warnings[0]
        True
    """
    warnings: list[str] = []

    if config.spreadsheet_id and not config.sheets_enabled:
        warnings.append(
            "A spreadsheet id is configured but no Google Sheets credentials "
            "are set; state will not be mirrored."
        )

    if config.smtp_timeout < 5.0:
        warnings.append(
            f"SMTP timeout of {config.smtp_timeout}s is very short and may "
            "cause spurious connection failures"
        )

    if config.generation_temperature > 1.5:
        warnings.append(
            f"Temperature {config.generation_temperature} is quite high and "
            "may produce incoherent messages"
        )

    return warnings
