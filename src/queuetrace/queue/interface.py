"""Interfaces the queue integration needs from the host queue system."""

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

PayloadHook = Callable[[str | None, str | None, dict[str, Any] | None], dict[str, Any] | None]
"""
Callback run while a job payload is being built.

Receives (connection_name, queue_name, payload) and returns the payload to
store, usually the same dict with extra fields added.
"""


@runtime_checkable
class PayloadHookRegistry(Protocol):
    """
    Protocol for queues that let integrations extend job payloads.

    Example:
        >>> class MyQueue:
        ...     def create_payload_using(self, callback: PayloadHook | None) -> None:
        ...         self._hooks.append(callback)
    """

    def create_payload_using(self, callback: PayloadHook | None) -> None:
        """
        Register a payload hook.

        Args:
            callback: Hook to run for every payload built from now on. None
                removes every registered hook.
        """
        ...


__all__ = ["PayloadHook", "PayloadHookRegistry"]
