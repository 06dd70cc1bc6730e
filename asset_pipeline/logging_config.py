"""Centralized logging configuration with Pydantic Logfire integration."""

import logging
from typing import Any

import logfire
from fastapi import FastAPI

from asset_pipeline.config import get_settings


def setup_logging() -> None:
    """
    Configure Logfire and Python logging for a pipeline process.

    Logfire only ships spans when a token is configured; without one the
    structured calls still reach the console.
    """
    settings = get_settings()

    logfire_config: dict[str, Any] = {
        "environment": settings.env,
        "send_to_logfire": "if-token-present",
    }
    if settings.logfire_token:
        logfire_config["token"] = settings.logfire_token

    logfire.configure(**logfire_config)
    logfire.instrument_pydantic()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    if settings.env == "local":
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
    else:
        # Logfire handles structured formatting
        logging.basicConfig(level=log_level, format="%(message)s")


def setup_logfire(app: FastAPI) -> None:
    """Configure logging and add request tracing to the dashboard app."""
    setup_logging()
    logfire.instrument_fastapi(app)


def mask_credential(value: str | None, visible: int = 4) -> str:
    """Redact a credential for logs, keeping only its last ``visible`` characters."""
    if not value:
        return ""
    if len(value) <= visible * 2:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]
