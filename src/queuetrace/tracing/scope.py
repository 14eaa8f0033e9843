"""
Scopes and breadcrumbs.

A scope is the mutable per-execution bag the hub keeps on its scope stack.
It holds the breadcrumbs recorded so far, the propagation context used when
no span is active and the current span.
"""

from __future__ import annotations

from collections import deque
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from queuetrace.tracing.propagation import PropagationContext
from queuetrace.tracing.span import Span

DEFAULT_MAX_BREADCRUMBS = 100


class BreadcrumbLevel(Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


class BreadcrumbType(Enum):
    DEFAULT = "default"
    ERROR = "error"
    NAVIGATION = "navigation"
    HTTP = "http"


class Breadcrumb(BaseModel):
    """
    A lightweight timestamped diagnostic event attached to a scope.

    Example:
        >>> Breadcrumb(
        ...     level=BreadcrumbLevel.INFO,
        ...     category="queue.job",
        ...     message="Processing queue job",
        ...     data={"job": "SendReceipt"},
        ... )
    """

    model_config = ConfigDict(frozen=True)

    level: BreadcrumbLevel = Field(
        default=BreadcrumbLevel.INFO,
        description="Severity of the breadcrumb",
    )
    type: BreadcrumbType = Field(
        default=BreadcrumbType.DEFAULT,
        description="Kind of breadcrumb",
    )
    category: str = Field(
        ...,
        description="Dotted category (e.g., 'queue.job')",
    )
    message: str | None = Field(
        default=None,
        description="Human readable message",
    )
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Structured data",
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the breadcrumb was recorded (UTC)",
    )


class Scope:
    """
    Per-execution context holding breadcrumbs, propagation state and the
    current span.

    Args:
        max_breadcrumbs: Maximum number of breadcrumbs kept; older ones are
            dropped first.
    """

    def __init__(self, max_breadcrumbs: int = DEFAULT_MAX_BREADCRUMBS) -> None:
        self._max_breadcrumbs = max_breadcrumbs
        self._breadcrumbs: deque[Breadcrumb] = deque(maxlen=max_breadcrumbs)
        self._propagation_context = PropagationContext.from_defaults()
        self._span: Span | None = None

    @property
    def breadcrumbs(self) -> list[Breadcrumb]:
        """Breadcrumbs in the order they were recorded."""
        return list(self._breadcrumbs)

    @property
    def propagation_context(self) -> PropagationContext:
        return self._propagation_context

    @property
    def span(self) -> Span | None:
        return self._span

    @span.setter
    def span(self, span: Span | None) -> None:
        self._span = span

    def add_breadcrumb(self, breadcrumb: Breadcrumb) -> bool:
        """Record a breadcrumb. Returns False if breadcrumbs are disabled."""
        if self._max_breadcrumbs == 0:
            return False
        self._breadcrumbs.append(breadcrumb)
        return True

    def clear_breadcrumbs(self) -> None:
        self._breadcrumbs.clear()

    def set_max_breadcrumbs(self, max_breadcrumbs: int) -> None:
        """Change the breadcrumb limit, keeping the most recent breadcrumbs."""
        self._max_breadcrumbs = max_breadcrumbs
        self._breadcrumbs = deque(self._breadcrumbs, maxlen=max_breadcrumbs)

    def set_propagation_context(self, context: PropagationContext) -> None:
        self._propagation_context = context

    def clone(self) -> Scope:
        """Copy the scope so that changes to the copy do not leak back."""
        scope = Scope(self._max_breadcrumbs)
        scope._breadcrumbs.extend(self._breadcrumbs)
        scope._propagation_context = self._propagation_context
        scope._span = self._span
        return scope


__all__ = [
    "DEFAULT_MAX_BREADCRUMBS",
    "Breadcrumb",
    "BreadcrumbLevel",
    "BreadcrumbType",
    "Scope",
]
