"""
Unit tests for the event bus.
"""

from cipher_otc.core.events import AuctionEvent, EventBus, EventType


class TestEventBus:
    """Tests for publish/subscribe and history."""

    def test_emit_records_history(self):
        bus = EventBus()
        event = bus.emit(EventType.REQUEST_CREATED, 1, seller=b"\x01" * 20)
        assert len(bus) == 1
        assert bus.history[0] is event
        assert event.data["seller"] == b"\x01" * 20

    def test_subscribers_receive_matching_events(self):
        bus = EventBus()
        received = []
        bus.subscribe(EventType.RESULTS_READY, received.append)

        bus.emit(EventType.BID_SUBMITTED, 1)
        bus.emit(EventType.RESULTS_READY, 1, handles=[])

        assert [e.event_type for e in received] == [EventType.RESULTS_READY]

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        bus.subscribe(EventType.AUCTION_FAILED, received.append)
        bus.unsubscribe(EventType.AUCTION_FAILED, received.append)
        bus.emit(EventType.AUCTION_FAILED, 1)
        assert received == []

    def test_failing_handler_does_not_block_others(self):
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("subscriber bug")

        bus.subscribe(EventType.RESULTS_READY, broken)
        bus.subscribe(EventType.RESULTS_READY, received.append)

        event = bus.emit(EventType.RESULTS_READY, 1, handles=[])
        assert received == [event]
        assert bus.history == [event]

    def test_len_counts_history(self):
        bus = EventBus()
        assert len(bus) == 0
        assert not bus

    def test_events_for(self):
        bus = EventBus()
        bus.emit(EventType.REQUEST_CREATED, 1)
        bus.emit(EventType.REQUEST_CREATED, 2)
        bus.emit(EventType.BID_SUBMITTED, 1)

        assert len(bus.events_for(1)) == 2
        assert len(bus.events_for(1, EventType.BID_SUBMITTED)) == 1
        assert bus.events_for(3) == []

    def test_event_names(self):
        assert EventType.AUCTION_FINALIZED.value == "AuctionFinalized"
        assert isinstance(AuctionEvent(EventType.REQUEST_CANCELLED, 1).timestamp, int)
