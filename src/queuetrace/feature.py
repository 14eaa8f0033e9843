"""
Base class for integrations that hook into a host system's events.

A feature decides from its configuration whether it applies at all and, if
so, registers its listeners when booted.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from queuetrace.config import QueueTracingConfig
from queuetrace.tracing.hub import Hub, get_current_hub

if TYPE_CHECKING:
    from queuetrace.queue.dispatcher import EventDispatcher

logger = logging.getLogger(__name__)


class Feature(ABC):
    """
    Abstract base class for integrations.

    Args:
        config: Feature toggles. Defaults to ``QueueTracingConfig()``.
        hub: Hub to trace with. Defaults to the process-wide hub.
    """

    def __init__(
        self,
        config: QueueTracingConfig | None = None,
        *,
        hub: Hub | None = None,
    ) -> None:
        self._config = config or QueueTracingConfig()
        self._hub = hub or get_current_hub()
        self._booted = False

    @property
    def config(self) -> QueueTracingConfig:
        return self._config

    @property
    def hub(self) -> Hub:
        return self._hub

    @property
    def booted(self) -> bool:
        return self._booted

    @abstractmethod
    def is_applicable(self) -> bool:
        """Whether the feature has anything to do with its configuration."""
        ...

    @abstractmethod
    def on_boot(self, dispatcher: EventDispatcher) -> None:
        """Register listeners. Called once by ``boot()``."""
        ...

    def boot(self, dispatcher: EventDispatcher) -> bool:
        """
        Boot the feature if it is applicable.

        Args:
            dispatcher: Dispatcher to register listeners on

        Returns:
            True if the feature was booted by this call
        """
        if self._booted:
            return False

        if not self.is_applicable():
            logger.debug(
                f"Feature {type(self).__name__} is not applicable, skipping boot",
                extra={"feature": type(self).__name__},
            )
            return False

        self.on_boot(dispatcher)
        self._booted = True
        logger.info(
            f"Feature {type(self).__name__} booted",
            extra={"feature": type(self).__name__},
        )
        return True

    def is_breadcrumb_feature_enabled(self, feature: str) -> bool:
        return bool(self._config.breadcrumbs.get(feature, False))

    def is_tracing_feature_enabled(self, feature: str) -> bool:
        if not self._config.enable_tracing:
            return False
        return bool(self._config.tracing.get(feature, False))


__all__ = ["Feature"]
