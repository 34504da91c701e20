"""Verification event dispatch.

``CheckedDirectory.verify_checksums`` reports its findings through a
``Dispatcher``. Handlers are plain callables registered per event and run
synchronously in registration order. A handler can end the current
verification early by returning ``Flow.STOP``:

- after ``valid_signature``/``invalid_signature``: no item comparison is
  performed at all;
- after ``directory_changed``/``directory_unchanged``: the remaining item
  events are skipped, but the returned ``Changes`` is still complete.

Returning ``None`` (or ``Flow.CONTINUE``) lets verification proceed.

Example:
    >>> dispatcher = Dispatcher()
    >>> @dispatcher.invalid_signature
    ... def abort(directory):
    ...     return Flow.STOP
"""

from __future__ import annotations

import logging
from collections import defaultdict
from enum import StrEnum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class VerificationEvent(StrEnum):
    """Every event a verification can emit, with the handler arguments."""

    VALID_SIGNATURE = "valid_signature"  # (directory)
    INVALID_SIGNATURE = "invalid_signature"  # (directory)
    DIRECTORY_UNCHANGED = "directory_unchanged"  # (directory)
    DIRECTORY_CHANGED = "directory_changed"  # (directory)
    ITEM_ADDED = "item_added"  # (directory, name)
    ITEM_REMOVED = "item_removed"  # (directory, name)
    ITEM_CHANGED = "item_changed"  # (directory, name, expected, actual)
    ITEM_UNCHANGED = "item_unchanged"  # (directory, name)


class Flow(StrEnum):
    """Handler result controlling the rest of a verification call."""

    CONTINUE = "continue"
    STOP = "stop"


Handler = Callable[..., Optional[Flow]]

# Events after which a STOP is honored
STOPPABLE_EVENTS = frozenset({
    VerificationEvent.VALID_SIGNATURE,
    VerificationEvent.INVALID_SIGNATURE,
    VerificationEvent.DIRECTORY_UNCHANGED,
    VerificationEvent.DIRECTORY_CHANGED,
})


class Dispatcher:
    """Registry of verification handlers for a single verify call."""

    def __init__(self) -> None:
        self._handlers: dict[VerificationEvent, list[Handler]] = defaultdict(list)

    def on(self, event: VerificationEvent | str, handler: Handler | None = None):
        """Register ``handler`` for ``event``.

        Works as a plain call or, without ``handler``, as a decorator.

        Raises:
            ValueError: If ``event`` is not a known event name
        """
        event = VerificationEvent(event)

        def register(fn: Handler) -> Handler:
            self._handlers[event].append(fn)
            return fn

        if handler is None:
            return register
        return register(handler)

    def handlers(self, event: VerificationEvent | str) -> list[Handler]:
        return list(self._handlers.get(VerificationEvent(event), ()))

    def emit(self, event: VerificationEvent, *args: Any) -> Flow:
        """Run the handlers for ``event`` and return the resulting flow.

        The first handler returning ``Flow.STOP`` ends the emission. A STOP
        from an event outside ``STOPPABLE_EVENTS`` is ignored.
        """
        for handler in self._handlers.get(event, ()):
            if handler(*args) == Flow.STOP:
                if event in STOPPABLE_EVENTS:
                    return Flow.STOP
                logger.debug(f"Ignoring stop request from {event} handler")
        return Flow.CONTINUE

    # Per-event registration helpers, usable as decorators

    def valid_signature(self, handler: Handler) -> Handler:
        return self.on(VerificationEvent.VALID_SIGNATURE, handler)

    def invalid_signature(self, handler: Handler) -> Handler:
        return self.on(VerificationEvent.INVALID_SIGNATURE, handler)

    def directory_unchanged(self, handler: Handler) -> Handler:
        return self.on(VerificationEvent.DIRECTORY_UNCHANGED, handler)

    def directory_changed(self, handler: Handler) -> Handler:
        return self.on(VerificationEvent.DIRECTORY_CHANGED, handler)

    def item_added(self, handler: Handler) -> Handler:
        return self.on(VerificationEvent.ITEM_ADDED, handler)

    def item_removed(self, handler: Handler) -> Handler:
        return self.on(VerificationEvent.ITEM_REMOVED, handler)

    def item_changed(self, handler: Handler) -> Handler:
        return self.on(VerificationEvent.ITEM_CHANGED, handler)

    def item_unchanged(self, handler: Handler) -> Handler:
        return self.on(VerificationEvent.ITEM_UNCHANGED, handler)


class EventRecorder(Dispatcher):
    """Dispatcher that also records every emission as ``(event, args)``.

    Recording happens before handlers run, so a stopped emission is still
    recorded.
    """

    def __init__(self) -> None:
        super().__init__()
        self.emitted: list[tuple[VerificationEvent, tuple[Any, ...]]] = []

    def emit(self, event: VerificationEvent, *args: Any) -> Flow:
        self.emitted.append((event, args))
        return super().emit(event, *args)

    def events(self) -> list[VerificationEvent]:
        return [event for event, _ in self.emitted]

    def count(self, event: VerificationEvent | str) -> int:
        event = VerificationEvent(event)
        return sum(1 for emitted, _ in self.emitted if emitted == event)
