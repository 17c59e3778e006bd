"""
Events - Observable audit trail for CipherOTC.

Every lifecycle transition publishes an AuctionEvent. Events are kept in an
append-only history (for audits and tests) and dispatched synchronously to
subscribers, which is how the decryption oracle learns that results are ready.
"""

import time
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from cipher_otc.utils.logger import get_logger

logger = get_logger("events")


class EventType(str, Enum):
    """Kinds of lifecycle events."""
    REQUEST_CREATED = "RequestCreated"
    BID_SUBMITTED = "BidSubmitted"
    RESULTS_READY = "ResultsReady"
    AUCTION_FINALIZED = "AuctionFinalized"
    AUCTION_FAILED = "AuctionFailed"
    REQUEST_CANCELLED = "RequestCancelled"


@dataclass(frozen=True)
class AuctionEvent:
    """A single emitted event."""
    event_type: EventType
    request_id: int
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=lambda: int(time.time()))


Handler = Callable[[AuctionEvent], None]


class EventBus:
    """
    Synchronous publish/subscribe with history.

    Handlers run after the publishing operation has committed its state, so a
    handler may safely call back into public operations.
    """

    def __init__(self):
        self.history: List[AuctionEvent] = []
        self._handlers: Dict[EventType, List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: EventType, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: EventType, handler: Handler) -> None:
        if handler in self._handlers[event_type]:
            self._handlers[event_type].remove(handler)

    def publish(self, event: AuctionEvent) -> None:
        self.history.append(event)
        logger.debug(f"{event.event_type.value} request={event.request_id}")
        # The publishing operation has already committed; one failing handler
        # must not hide the event from the rest
        for handler in list(self._handlers[event.event_type]):
            try:
                handler(event)
            except Exception:
                name = getattr(handler, "__qualname__", repr(handler))
                logger.exception(
                    f"Handler {name} failed on {event.event_type.value} request={event.request_id}"
                )

    def emit(self, event_type: EventType, request_id: int, **data: Any) -> AuctionEvent:
        event = AuctionEvent(event_type=event_type, request_id=request_id, data=data)
        self.publish(event)
        return event

    def events_for(self, request_id: int, event_type: Optional[EventType] = None) -> List[AuctionEvent]:
        """History filtered by request (and optionally type)."""
        return [
            e for e in self.history
            if e.request_id == request_id and (event_type is None or e.event_type == event_type)
        ]

    def __len__(self) -> int:
        return len(self.history)
