"""Configuration module for the webhook broker.

This module provides the BrokerConfig class for configuring the broker: where the
upstream workflow engine lives, how long a dispatch may take, which cache backend
backs the result cache, how payload fields map to subject keys and tracking
handles, and how long tracking state is retained.

Example:
    Basic usage with defaults:

        >>> config = BrokerConfig()
        >>> config.cache_backend
        'memory'

    Custom configuration:

        >>> config = BrokerConfig(
        ...     upstream_url="https://engine.example.com/webhook/analysis",
        ...     cache_backend="redis",
        ...     redis_url="redis://cache:6379/0",
        ...     fallback_subjects="Unknown Equipment, Volvo A30G",
        ... )
        >>> config.fallback_subjects
        ['unknown equipment', 'volvo a30g']

    Loading from environment:

        >>> import os
        >>> os.environ['BROKER_UPSTREAM_URL'] = 'https://engine.example.com/webhook/x'
        >>> os.environ['BROKER_UPSTREAM_TIMEOUT_SECONDS'] = '60'
        >>> config = BrokerConfig.from_env()
"""

import os
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from webhook_broker.keys import normalize_subject_key

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class BrokerConfig(BaseModel):
    """Configuration for the asynchronous response broker.

    Attributes:
        upstream_url: URL of the upstream workflow engine webhook that receives
            submitted work.
        upstream_timeout_seconds: Upper bound for one upstream dispatch. A dispatch
            that exceeds it is reported as a network error. Must be between 1 and
            900. Default is 120.
        cache_backend: Primary cache backend. "memory" runs with the process-local
            fallback only; "redis" adds a shared Redis primary in front of it.
        redis_url: Connection URL for the Redis primary.
        cache_namespace: Prefix for every cache key in every backend.
        subject_field: Payload field holding the descriptive subject used as the
            durable cache key.
        client_id_field: Payload field holding the client identifier used in
            tracking handles.
        timestamp_field: Payload field holding the submission timestamp (ms)
            used in tracking handles.
        default_subject: Subject used when a payload carries none.
        fallback_subjects: Subjects consulted, in order, as the last stage of
            status reconciliation. Normalized like any subject key.
        min_text_length: Non-JSON upstream bodies longer than this are accepted
            as textual results; shorter ones are reported as malformed.
        text_result_field: Field name of the envelope wrapping textual results.
        startup_failure_marker: Body marker identifying a workflow that could not
            be started.
        poll_interval_seconds: Spacing between status queries of the polling client.
        poll_max_attempts: Maximum number of status queries before giving up.
        registry_max_entries: Maximum number of tracked handles; the oldest
            entries are evicted first.
        registry_ttl_seconds: Optional lifetime of tracked handles. None keeps
            entries for the lifetime of the process.
        cleanup_interval_seconds: Interval of the registry retention sweep.
        log_level: Log level for structured logging.
        log_json: Emit JSON logs when True, console logs otherwise.

    Note:
        This class is immutable (frozen=True). Create a new instance if you need
        different settings.
    """

    upstream_url: str = Field(
        default="http://localhost:5678/webhook/analysis",
        description="URL of the upstream workflow engine webhook",
    )
    upstream_timeout_seconds: float = Field(
        default=120.0,
        description="Maximum duration of one upstream dispatch in seconds (1-900)",
    )
    cache_backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Primary cache backend",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Connection URL for the Redis primary cache",
    )
    cache_namespace: str = Field(
        default="residual_analysis",
        min_length=1,
        description="Namespace prefix for cache keys",
    )
    subject_field: str = Field(default="itemDescription")
    client_id_field: str = Field(default="lesseeName")
    timestamp_field: str = Field(default="timestamp")
    default_subject: str = Field(default="Unknown Equipment", min_length=1)
    fallback_subjects: list[str] | str = Field(
        default=["unknown equipment"],
        description="Subjects consulted as the last reconciliation stage",
    )
    min_text_length: int = Field(
        default=10,
        ge=0,
        description="Minimum length of a non-JSON body accepted as a textual result",
    )
    text_result_field: str = Field(default="residualAnalysis", min_length=1)
    startup_failure_marker: str = Field(default="Workflow could not be started")
    poll_interval_seconds: float = Field(default=5.0, gt=0)
    poll_max_attempts: int = Field(default=120, ge=1)
    registry_max_entries: int = Field(default=10000, ge=1)
    registry_ttl_seconds: int | None = Field(default=None)
    cleanup_interval_seconds: int = Field(default=300, ge=1)
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True)

    model_config = {"frozen": True}

    @field_validator("upstream_url")
    @classmethod
    def validate_upstream_url(cls, v: str) -> str:
        """Require an http(s) URL for the upstream engine."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"upstream_url must be an http(s) URL, got {v!r}")
        return v

    @field_validator("upstream_timeout_seconds")
    @classmethod
    def validate_upstream_timeout_seconds(cls, v: float) -> float:
        """Validate the dispatch timeout is within acceptable range.

        Raises:
            ValueError: If the timeout is not between 1 and 900 seconds.
        """
        if not (1 <= v <= 900):
            raise ValueError(f"upstream_timeout_seconds must be between 1 and 900, got {v}")
        return v

    @field_validator("fallback_subjects", mode="before")
    @classmethod
    def validate_fallback_subjects(cls, v: Any) -> list[str]:
        """Validate and normalize fallback subjects.

        Accepts a list or a comma-separated string (from environment variables).
        Entries are normalized like subject keys; blank entries are dropped.

        Example:
            >>> BrokerConfig(fallback_subjects=" Volvo A30G ,,Bell B60E").fallback_subjects
            ['volvo a30g', 'bell b60e']
        """
        if isinstance(v, str):
            v = v.split(",")

        if not isinstance(v, list):
            raise ValueError("fallback_subjects must be a list or comma-separated string")

        subjects = [normalize_subject_key(str(subject)) for subject in v]
        return [subject for subject in subjects if subject]

    @field_validator("registry_ttl_seconds")
    @classmethod
    def validate_registry_ttl_seconds(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError(f"registry_ttl_seconds must be >= 1 or unset, got {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level: {v}. Valid levels are: {', '.join(sorted(VALID_LOG_LEVELS))}"
            )
        return level

    @property
    def poll_budget_seconds(self) -> float:
        """Upper bound of the time a polling client spends sleeping between queries."""
        return self.poll_interval_seconds * self.poll_max_attempts

    @classmethod
    def from_env(cls, prefix: str = "BROKER_") -> "BrokerConfig":
        """Create configuration from environment variables.

        Variable names are uppercase field names with the prefix, for example
        ``BROKER_REDIS_URL``. Missing variables keep their defaults. An empty
        ``BROKER_REGISTRY_TTL_SECONDS`` means no TTL.

        Args:
            prefix: Prefix for environment variable names. Default is "BROKER_".

        Returns:
            BrokerConfig instance populated from environment variables.

        Example:
            >>> import os
            >>> os.environ['BROKER_CACHE_BACKEND'] = 'redis'
            >>> os.environ['BROKER_FALLBACK_SUBJECTS'] = 'volvo a30g,unknown equipment'
            >>> config = BrokerConfig.from_env()
            >>> config.cache_backend
            'redis'
        """
        config_dict: dict[str, Any] = {}

        field_types = {
            "upstream_url": str,
            "upstream_timeout_seconds": float,
            "cache_backend": str,
            "redis_url": str,
            "cache_namespace": str,
            "subject_field": str,
            "client_id_field": str,
            "timestamp_field": str,
            "default_subject": str,
            "fallback_subjects": list,
            "min_text_length": int,
            "text_result_field": str,
            "startup_failure_marker": str,
            "poll_interval_seconds": float,
            "poll_max_attempts": int,
            "registry_max_entries": int,
            "registry_ttl_seconds": int,
            "cleanup_interval_seconds": int,
            "log_level": str,
            "log_json": bool,
        }

        for field_name, field_type in field_types.items():
            env_var = f"{prefix}{field_name.upper()}"
            env_value = os.environ.get(env_var)

            if env_value is None:
                continue

            if field_type is int:
                config_dict[field_name] = int(env_value) if env_value.strip() else None
            elif field_type is float:
                config_dict[field_name] = float(env_value)
            elif field_type is bool:
                config_dict[field_name] = env_value.strip().lower() in {"1", "true", "yes", "on"}
            else:
                # Lists stay comma-separated strings; the validator splits them
                config_dict[field_name] = env_value

        return cls(**config_dict)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "BrokerConfig":
        """Create configuration from a dictionary.

        Raises:
            ValidationError: If the dictionary contains invalid values.
        """
        return cls(**config_dict)
