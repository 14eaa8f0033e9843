"""
Configuration for queue tracing.

This module provides:
- QueueTracingConfig: Feature toggles for breadcrumbs and tracing of queue jobs
- BREADCRUMB_FEATURES / TRACING_FEATURES: The feature names that can be toggled
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

BREADCRUMB_FEATURES = frozenset({"queue_info"})
"""Breadcrumb features understood by the queue integration."""

TRACING_FEATURES = frozenset({"queue_jobs", "queue_job_transactions"})
"""Tracing features understood by the queue integration."""


def _default_breadcrumbs() -> dict[str, bool]:
    return {"queue_info": True}


def _default_tracing() -> dict[str, bool]:
    return {"queue_jobs": True, "queue_job_transactions": False}


@dataclass(frozen=True)
class QueueTracingConfig:
    """
    Configuration for the queue integration.

    Attributes:
        enable_tracing: Master switch for every tracing feature. When False,
            ``is_tracing_feature_enabled`` reports False for all features,
            breadcrumbs are unaffected.
        breadcrumbs: Breadcrumb feature toggles
            - "queue_info": Record a breadcrumb when a job starts processing
        tracing: Tracing feature toggles
            - "queue_jobs": Record jobs as child spans when a span is active
            - "queue_job_transactions": Record jobs as new transactions when
              no span is active
        messaging_system: Value of the ``messaging.system`` span attribute
        max_breadcrumbs: Maximum number of breadcrumbs kept per scope

    Example:
        >>> config = QueueTracingConfig(
        ...     tracing={"queue_jobs": True, "queue_job_transactions": True},
        ...     messaging_system="celery",
        ... )
        >>> config.tracing["queue_job_transactions"]
        True
    """

    enable_tracing: bool = True
    breadcrumbs: Mapping[str, bool] = field(default_factory=_default_breadcrumbs)
    tracing: Mapping[str, bool] = field(default_factory=_default_tracing)
    messaging_system: str = "python"
    max_breadcrumbs: int = 100

    def __post_init__(self) -> None:
        """Validate configuration values."""
        unknown = set(self.breadcrumbs) - BREADCRUMB_FEATURES
        if unknown:
            raise ValueError(
                f"Unknown breadcrumb features: {sorted(unknown)}. "
                f"Supported features are {sorted(BREADCRUMB_FEATURES)}."
            )

        unknown = set(self.tracing) - TRACING_FEATURES
        if unknown:
            raise ValueError(
                f"Unknown tracing features: {sorted(unknown)}. "
                f"Supported features are {sorted(TRACING_FEATURES)}."
            )

        if not self.messaging_system:
            raise ValueError("messaging_system must be a non-empty string")

        if self.max_breadcrumbs < 0:
            raise ValueError(
                f"max_breadcrumbs must be non-negative, got {self.max_breadcrumbs}. "
                "Use 0 to disable breadcrumb recording."
            )

        # Fill in defaults for features the caller did not mention
        object.__setattr__(self, "breadcrumbs", {**_default_breadcrumbs(), **self.breadcrumbs})
        object.__setattr__(self, "tracing", {**_default_tracing(), **self.tracing})


__all__ = [
    "BREADCRUMB_FEATURES",
    "TRACING_FEATURES",
    "QueueTracingConfig",
]
