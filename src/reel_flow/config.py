"""
Runtime settings.

Read from the environment so the same build can point at different
collectors:

    REEL_ANALYTICS_URL      Collector base URL (default http://localhost:5000)
    REEL_BATCH_DELAY        Seconds to coalesce events before a flush (2.0)
    REEL_MAX_BATCH_SIZE     Events per request (10)
    REEL_MAX_RETRIES        Re-sends per event before it is dropped (3)
    REEL_REQUEST_TIMEOUT    Seconds per batch request (10.0)
    REEL_BEACON_TIMEOUT     Seconds for the shutdown send (2.0)
"""
from __future__ import annotations

import logging
import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

__all__ = ["RuntimeSettings"]

logger = logging.getLogger(__name__)

ENV_KEYS = {
    "analytics_base_url": "REEL_ANALYTICS_URL",
    "batch_delay": "REEL_BATCH_DELAY",
    "max_batch_size": "REEL_MAX_BATCH_SIZE",
    "max_retries": "REEL_MAX_RETRIES",
    "request_timeout": "REEL_REQUEST_TIMEOUT",
    "beacon_timeout": "REEL_BEACON_TIMEOUT",
}


class RuntimeSettings(BaseModel):
    """Settings for the analytics queue and its transport."""
    analytics_base_url: str = Field(default="http://localhost:5000", description="Collector base URL")
    batch_delay: float = Field(default=2.0, ge=0, description="Coalescing delay in seconds")
    max_batch_size: int = Field(default=10, ge=1, description="Events per request")
    max_retries: int = Field(default=3, ge=0, description="Re-sends before dropping")
    request_timeout: float = Field(default=10.0, gt=0, description="Batch request timeout")
    beacon_timeout: float = Field(default=2.0, gt=0, description="Shutdown send timeout")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RuntimeSettings":
        """
        Build settings from environment variables.

        Unset variables keep their defaults. Invalid values are logged
        and ignored rather than failing the session.
        """
        environ = os.environ if environ is None else environ
        values = {}
        for field_name, key in ENV_KEYS.items():
            raw = environ.get(key)
            if raw is None or raw.strip() == "":
                continue
            values[field_name] = raw.strip()

        try:
            return cls(**values)
        except ValidationError as e:
            logger.warning(f"Invalid runtime settings in environment, using defaults: {e}")
            return cls()
