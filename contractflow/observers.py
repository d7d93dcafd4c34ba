"""
Observer Pattern: observers notified by the workflow engine.

Lets logging and metrics react to contract events without the engine
knowing about them.
"""
import logging
from abc import ABC, abstractmethod
from collections import Counter
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class ContractEvent:
    """An event raised by the workflow engine after a successful commit."""

    def __init__(self, event_type: str, contract_id: str, actor_id: str, at: str, data: Optional[Dict[str, Any]] = None):
        self.event_type = event_type
        self.contract_id = contract_id
        self.actor_id = actor_id
        self.at = at
        self.data = data or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "contract_id": self.contract_id,
            "actor_id": self.actor_id,
            "at": self.at,
            "data": self.data,
        }


class ContractObserver(ABC):
    """Base observer for contract events."""

    @abstractmethod
    def update(self, event: ContractEvent) -> None:
        pass


class LogObserver(ContractObserver):
    """Logs every event and keeps the most recent ones in memory."""

    def __init__(self, max_entries: int = 500):
        self.max_entries = max_entries
        self._logs: List[Dict[str, Any]] = []

    def update(self, event: ContractEvent) -> None:
        entry = event.to_dict()
        self._logs.append(entry)
        if len(self._logs) > self.max_entries:
            del self._logs[: len(self._logs) - self.max_entries]

        logger.info(
            "contract=%s event=%s actor=%s data=%s",
            event.contract_id, event.event_type, event.actor_id, event.data,
        )

    def get_logs(self) -> List[Dict[str, Any]]:
        return self._logs.copy()

    def clear_logs(self) -> None:
        self._logs.clear()


class MetricsObserver(ContractObserver):
    """Counts events by type and transitions by edge."""

    def __init__(self):
        self._events: Counter = Counter()
        self._transitions: Counter = Counter()

    def update(self, event: ContractEvent) -> None:
        self._events[event.event_type] += 1
        if event.event_type == "transitioned":
            edge = f"{event.data.get('from')}->{event.data.get('to')}"
            self._transitions[edge] += 1

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "total_events": sum(self._events.values()),
            "events_by_type": dict(self._events),
            "transitions": dict(self._transitions),
        }

    def reset(self) -> None:
        self._events.clear()
        self._transitions.clear()


class EventPublisher:
    """Fan-out to registered observers. An observer failure never undoes a commit."""

    def __init__(self, observers: Optional[List[ContractObserver]] = None):
        self._observers: List[ContractObserver] = list(observers or [])

    def attach(self, observer: ContractObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def detach(self, observer: ContractObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def publish(self, event: ContractEvent) -> None:
        for observer in self._observers:
            try:
                observer.update(event)
            except Exception:
                logger.exception("Observer %s failed on %s", type(observer).__name__, event.event_type)
