"""Tests for the verification event dispatcher."""

import pytest

from checksums.events import Dispatcher, EventRecorder, Flow, VerificationEvent


def test_event_set_is_enumerable():
    assert [e.value for e in VerificationEvent] == [
        "valid_signature",
        "invalid_signature",
        "directory_unchanged",
        "directory_changed",
        "item_added",
        "item_removed",
        "item_changed",
        "item_unchanged",
    ]


class TestDispatcher:
    def test_handlers_run_in_registration_order(self):
        calls = []
        dispatcher = Dispatcher()
        dispatcher.item_added(lambda d, name: calls.append(("first", name)))
        dispatcher.on("item_added", lambda d, name: calls.append(("second", name)))

        assert dispatcher.emit(VerificationEvent.ITEM_ADDED, "/root", "f") == Flow.CONTINUE
        assert calls == [("first", "f"), ("second", "f")]

    def test_decorator_registration(self):
        dispatcher = Dispatcher()

        @dispatcher.invalid_signature
        def abort(directory):
            return Flow.STOP

        assert dispatcher.handlers("invalid_signature") == [abort]
        assert dispatcher.emit(VerificationEvent.INVALID_SIGNATURE, "/root") == Flow.STOP

    def test_on_as_decorator(self):
        dispatcher = Dispatcher()

        @dispatcher.on(VerificationEvent.DIRECTORY_CHANGED)
        def changed(directory):
            return None

        assert dispatcher.handlers(VerificationEvent.DIRECTORY_CHANGED) == [changed]

    def test_every_event_has_a_helper(self):
        dispatcher = Dispatcher()
        for event in VerificationEvent:
            getattr(dispatcher, event.value)(lambda *args: None)
            assert len(dispatcher.handlers(event)) == 1

    def test_stop_ends_the_emission(self):
        calls = []
        dispatcher = Dispatcher()
        dispatcher.directory_changed(lambda d: Flow.STOP)
        dispatcher.directory_changed(lambda d: calls.append(d))

        assert dispatcher.emit(VerificationEvent.DIRECTORY_CHANGED, "/root") == Flow.STOP
        assert calls == []

    def test_stop_from_item_event_is_ignored(self):
        calls = []
        dispatcher = Dispatcher()
        dispatcher.item_changed(lambda *args: Flow.STOP)
        dispatcher.item_changed(lambda *args: calls.append(args))

        flow = dispatcher.emit(VerificationEvent.ITEM_CHANGED, "/root", "baz", "old", "new")
        assert flow == Flow.CONTINUE
        assert calls == [("/root", "baz", "old", "new")]

    def test_unknown_event_rejected(self):
        with pytest.raises(ValueError):
            Dispatcher().on("item_exploded", lambda *args: None)

    def test_emit_without_handlers(self):
        assert Dispatcher().emit(VerificationEvent.VALID_SIGNATURE, "/root") == Flow.CONTINUE


class TestEventRecorder:
    def test_records_emissions(self):
        recorder = EventRecorder()
        recorder.emit(VerificationEvent.VALID_SIGNATURE, "/root")
        recorder.emit(VerificationEvent.ITEM_ADDED, "/root", "f")

        assert recorder.events() == [VerificationEvent.VALID_SIGNATURE, VerificationEvent.ITEM_ADDED]
        assert recorder.emitted[1] == (VerificationEvent.ITEM_ADDED, ("/root", "f"))
        assert recorder.count("item_added") == 1

    def test_records_stopped_emission(self):
        recorder = EventRecorder()
        recorder.invalid_signature(lambda d: Flow.STOP)
        assert recorder.emit(VerificationEvent.INVALID_SIGNATURE, "/root") == Flow.STOP
        assert recorder.count(VerificationEvent.INVALID_SIGNATURE) == 1
