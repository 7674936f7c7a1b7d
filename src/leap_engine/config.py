"""Engine configuration.

Loads from environment variables and .env file using pydantic-settings.
All variables are prefixed with LEAP_ (e.g. LEAP_MAX_CYCLES=500).
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class EngineSettings(BaseSettings):
    """Configuration for the inference engine."""

    # ----- Logging -----
    log_level: str = Field(
        default="WARNING",
        description="Root log level applied by configure_logging().",
    )
    log_events: bool = Field(
        default=False,
        description="Mirror every emitted engine event to the debug log.",
    )

    # ----- Run loop -----
    max_cycles: int | None = Field(
        default=None,
        ge=1,
        description="Stop a run after this many agenda tasks. Unbounded if not set.",
    )

    # ----- Facts -----
    topic_event_kind: str = Field(
        default="_topic_event",
        min_length=1,
        description="Kind used for facts asserted by ActionContext.publish().",
    )
    snapshot_format: Literal["json", "yaml"] = Field(
        default="yaml",
        description="Format used by dump_facts() when the path has no known suffix.",
    )

    model_config = {
        "env_prefix": "LEAP_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> EngineSettings:
    """Get cached settings singleton."""
    return EngineSettings()


def configure_logging(settings: EngineSettings | None = None) -> None:
    """Apply the configured log level to the root logger."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
