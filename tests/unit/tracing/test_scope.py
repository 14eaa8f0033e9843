"""Unit tests for Scope and Breadcrumb."""

from __future__ import annotations

from datetime import UTC

import pytest
from pydantic import ValidationError

from queuetrace.tracing.propagation import PropagationContext
from queuetrace.tracing.scope import Breadcrumb, BreadcrumbLevel, BreadcrumbType, Scope


def crumb(message: str) -> Breadcrumb:
    return Breadcrumb(category="queue.job", message=message)


class TestBreadcrumb:
    def test_defaults(self) -> None:
        breadcrumb = crumb("Processing queue job")

        assert breadcrumb.level is BreadcrumbLevel.INFO
        assert breadcrumb.type is BreadcrumbType.DEFAULT
        assert breadcrumb.data == {}
        assert breadcrumb.timestamp.tzinfo is UTC

    def test_category_is_required(self) -> None:
        with pytest.raises(ValidationError):
            Breadcrumb()  # type: ignore[call-arg]

    def test_is_frozen(self) -> None:
        breadcrumb = crumb("a")

        with pytest.raises(ValidationError):
            breadcrumb.message = "b"


class TestScope:
    """Tests for Scope."""

    def test_breadcrumbs_kept_in_order(self) -> None:
        scope = Scope()
        scope.add_breadcrumb(crumb("first"))
        scope.add_breadcrumb(crumb("second"))

        assert [b.message for b in scope.breadcrumbs] == ["first", "second"]

    def test_oldest_breadcrumbs_dropped_when_full(self) -> None:
        scope = Scope(max_breadcrumbs=2)
        for message in ("a", "b", "c"):
            scope.add_breadcrumb(crumb(message))

        assert [b.message for b in scope.breadcrumbs] == ["b", "c"]

    def test_zero_max_breadcrumbs_disables_recording(self) -> None:
        scope = Scope(max_breadcrumbs=0)

        assert scope.add_breadcrumb(crumb("a")) is False
        assert scope.breadcrumbs == []

    def test_set_max_breadcrumbs_keeps_most_recent(self) -> None:
        scope = Scope()
        for message in ("a", "b", "c"):
            scope.add_breadcrumb(crumb(message))

        scope.set_max_breadcrumbs(2)

        assert [b.message for b in scope.breadcrumbs] == ["b", "c"]
        scope.set_max_breadcrumbs(0)
        assert scope.add_breadcrumb(crumb("d")) is False

    def test_clear_breadcrumbs(self) -> None:
        scope = Scope()
        scope.add_breadcrumb(crumb("a"))
        scope.clear_breadcrumbs()

        assert scope.breadcrumbs == []

    def test_set_propagation_context(self) -> None:
        scope = Scope()
        context = PropagationContext(parent_sampled=True)

        scope.set_propagation_context(context)

        assert scope.propagation_context is context

    def test_clone_is_independent(self, checkout_transaction) -> None:
        """Changes to a clone never leak back into the original."""
        scope = Scope()
        scope.add_breadcrumb(crumb("before"))
        scope.span = checkout_transaction

        clone = scope.clone()
        clone.add_breadcrumb(crumb("after"))
        clone.span = None
        clone.set_propagation_context(PropagationContext.from_defaults())

        assert [b.message for b in clone.breadcrumbs] == ["before", "after"]
        assert [b.message for b in scope.breadcrumbs] == ["before"]
        assert scope.span is checkout_transaction
        assert scope.propagation_context is not clone.propagation_context
