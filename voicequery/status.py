"""Status publisher for verbose progress reporting over pub/sub."""

import logging
from typing import Callable

from pubsub import pub

from .models.events import StatusEvent

logger = logging.getLogger(__name__)

STATUS_TOPIC = "voicequery.status"


class StatusPublisher:
    """Publishes StatusEvents using pubsub.pub.

    Publishing is a no-op unless ``enabled`` is set, so callers can emit
    progress unconditionally and let verbose mode decide.
    """

    def __init__(self, topic: str = STATUS_TOPIC, enabled: bool = True):
        self.topic = topic
        self.enabled = enabled
        logger.debug(f"StatusPublisher initialized with topic: {topic}")

    def publish(self, stage: str, message: str) -> None:
        logger.debug(f"[{stage}] {message}")
        if not self.enabled:
            return
        pub.sendMessage(self.topic, event=StatusEvent(stage=stage, message=message))


def subscribe_status(listener: Callable[[StatusEvent], None], topic: str = STATUS_TOPIC) -> None:
    """Register a listener; pubsub keeps only a weak reference to it."""
    pub.subscribe(listener, topic)


def unsubscribe_status(listener: Callable[[StatusEvent], None], topic: str = STATUS_TOPIC) -> None:
    if pub.isSubscribed(listener, topic):
        pub.unsubscribe(listener, topic)
