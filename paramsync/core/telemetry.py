"""
Telemetry and event collection
"""
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List


@dataclass
class Metric:
    """Single metric value"""
    name: str
    value: float
    timestamp: float = field(default_factory=time.time)
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class Event:
    """Event record"""
    name: str
    timestamp: float = field(default_factory=time.time)
    metadata: Dict[str, Any] = field(default_factory=dict)


class Telemetry:
    """
    Telemetry collector.
    
    Written to by both the foreground thread and the session monitor,
    so every access goes through a lock.
    """
    
    def __init__(self, max_records: int = 1000):
        self._metrics: List[Metric] = []
        self._events: List[Event] = []
        self._max_records = max_records
        self._lock = threading.Lock()
    
    def record_metric(self, name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
        """Record a metric"""
        with self._lock:
            self._metrics.append(Metric(name=name, value=value, tags=tags or {}))
            del self._metrics[:-self._max_records]
    
    def record_event(self, name: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """Record an event"""
        with self._lock:
            self._events.append(Event(name=name, metadata=metadata or {}))
            del self._events[:-self._max_records]
    
    def get_metrics(self) -> List[Metric]:
        """Get all recorded metrics"""
        with self._lock:
            return self._metrics.copy()
    
    def get_events(self, name: Optional[str] = None) -> List[Event]:
        """Get recorded events, optionally filtered by name"""
        with self._lock:
            if name is None:
                return self._events.copy()
            return [e for e in self._events if e.name == name]
    
    def clear(self) -> None:
        """Clear all metrics and events"""
        with self._lock:
            self._metrics.clear()
            self._events.clear()


# Global telemetry instance
_telemetry = Telemetry()


def get_telemetry() -> Telemetry:
    """Get global telemetry instance"""
    return _telemetry
