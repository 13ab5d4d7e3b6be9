"""
Typed refresh subscriptions keyed by logical resource.
"""

import logging
from collections.abc import Callable

from schedule_engine.models import Resource

logger = logging.getLogger(__name__)


class RefreshBus:
    """Observers register per Resource; publishers announce a change."""

    def __init__(self):
        self._subscribers: dict[Resource, list[Callable[[Resource], None]]] = {
            r: [] for r in Resource
        }

    def subscribe(self, resource: Resource, callback: Callable[[Resource], None]):
        """Register *callback*; return a callable that unsubscribes it."""
        resource = Resource(resource)
        self._subscribers[resource].append(callback)

        def unsubscribe():
            try:
                self._subscribers[resource].remove(callback)
            except ValueError:
                pass

        return unsubscribe

    def publish(self, resource: Resource):
        resource = Resource(resource)
        logger.debug("Refresh requested for %s", resource.value)
        for callback in list(self._subscribers[resource]):
            try:
                callback(resource)
            except Exception as e:
                logger.error(f"Refresh subscriber for {resource.value} failed: {e}")
