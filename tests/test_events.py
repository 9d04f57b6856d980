# Test the observer primitives
from core.events import Signal


class TestSignal:

    def setup_method(self):
        self.signal = Signal("test")
        self.seen = []

    def test_emit_reaches_listeners_in_order(self):
        self.signal.connect(lambda value: self.seen.append(("first", value)))
        self.signal.connect(lambda value: self.seen.append(("second", value)))
        self.signal.emit(1)
        assert self.seen == [("first", 1), ("second", 1)]

    def test_unsubscribe_is_idempotent(self):
        subscription = self.signal.connect(self.seen.append)
        subscription.unsubscribe()
        subscription()
        assert not subscription.active
        assert len(self.signal) == 0
        self.signal.emit(1)
        assert self.seen == []

    def test_same_callback_connected_twice(self):
        first = self.signal.connect(self.seen.append)
        self.signal.connect(self.seen.append)
        first.unsubscribe()
        self.signal.emit("x")
        assert self.seen == ["x"]

    def test_listener_removed_mid_dispatch_is_skipped(self):
        handles = {}

        def remover(value):
            handles["victim"].unsubscribe()

        self.signal.connect(remover)
        handles["victim"] = self.signal.connect(self.seen.append)
        self.signal.emit(1)
        assert self.seen == []

    def test_listener_added_mid_dispatch_waits_for_next_emit(self):
        def adder(value):
            self.signal.connect(self.seen.append)

        subscription = self.signal.connect(adder)
        self.signal.emit(1)
        subscription.unsubscribe()
        self.signal.emit(2)
        assert self.seen == [2]

    def test_failing_listener_is_isolated(self):
        def broken(value):
            raise ValueError("bad listener")

        self.signal.connect(broken)
        self.signal.connect(self.seen.append)
        self.signal.emit(3)
        assert self.seen == [3]
