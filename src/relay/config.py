"""Relay configuration using pydantic-settings.

This module defines the RelaySettings class that reads configuration
from environment variables with the RELAY_ prefix. Required fields must
be set for the relay to start.
"""

import json
import logging
from typing import FrozenSet

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RelaySettings(BaseSettings):
    """Registry relay configuration from environment variables.

    All environment variables are prefixed with RELAY_ (e.g.,
    RELAY_GCR_PUBSUB_SECRET).

    Required fields (must be set via environment variables):
    - gcr_pubsub_secret: Shared secret expected in the GCR ``secret`` param
    - jenkins_url: Root URL of the Jenkins server
    """

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # DockerHub Configuration
    # -------------------------------------------------------------------------
    # Namespaces allowed to trigger builds, as a JSON list or comma-separated
    dockerhub_namespaces: str = ""

    # Timeout in seconds for the callback acknowledgement round-trip
    callback_timeout_seconds: float = 10.0

    # Link reported to DockerHub in the callback acknowledgement
    callback_target_url: str = ""

    # -------------------------------------------------------------------------
    # GCR Configuration
    # -------------------------------------------------------------------------
    # Shared secret the Pub/Sub push subscription sends as ?secret=
    gcr_pubsub_secret: str

    # -------------------------------------------------------------------------
    # Jenkins Configuration
    # -------------------------------------------------------------------------
    jenkins_url: str

    # Job to trigger; folder jobs as "folder/job"
    jenkins_job: str = "registry-push"

    jenkins_user: str = ""
    jenkins_api_token: str = ""

    # Remote build token configured on the job, if any
    jenkins_trigger_token: str = ""

    # Timeout in seconds for a single trigger request
    dispatch_timeout_seconds: float = 30.0

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("gcr_pubsub_secret")
    @classmethod
    def validate_pubsub_secret(cls, v: str) -> str:
        """Validate that the Pub/Sub secret is not empty."""
        if not v or not v.strip():
            raise ValueError("gcr_pubsub_secret cannot be empty")
        return v

    @field_validator("jenkins_url")
    @classmethod
    def validate_jenkins_url(cls, v: str) -> str:
        """Validate that the Jenkins URL is a valid URL format."""
        if not v or not v.strip():
            raise ValueError("jenkins_url cannot be empty")
        if not v.startswith(("http://", "https://")):
            raise ValueError("jenkins_url must start with http:// or https://")
        return v

    @field_validator("jenkins_job")
    @classmethod
    def validate_jenkins_job(cls, v: str) -> str:
        if not v.strip("/ "):
            raise ValueError("jenkins_job cannot be empty")
        return v

    @field_validator("dockerhub_namespaces")
    @classmethod
    def validate_namespaces(cls, v: str) -> str:
        """Validate that a JSON namespace list is a list of strings."""
        if v.strip().startswith("["):
            try:
                parsed = json.loads(v)
            except json.JSONDecodeError as e:
                raise ValueError(f"dockerhub_namespaces is not valid JSON: {e}")
            if not all(isinstance(item, str) for item in parsed):
                raise ValueError("dockerhub_namespaces must contain only strings")
        return v

    @field_validator("callback_timeout_seconds", "dispatch_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate that timeouts are positive."""
        if v <= 0:
            raise ValueError("timeouts must be greater than 0")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log_level: {v}")
        return level

    @property
    def allowed_namespaces(self) -> FrozenSet[str]:
        """The DockerHub namespace allow-list.

        Entries are kept verbatim apart from surrounding whitespace, since
        matching is case-sensitive.
        """
        raw = self.dockerhub_namespaces.strip()
        if not raw:
            return frozenset()
        if raw.startswith("["):
            items = json.loads(raw)
        else:
            items = raw.split(",")
        return frozenset(item.strip() for item in items if item.strip())


def get_settings() -> RelaySettings:
    """Create and return a RelaySettings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return RelaySettings()
