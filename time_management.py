#!/usr/bin/env python3
"""
time_management.py - Time Management System
===========================================
Search budgets (wall clock and node count) and the cooperative cancellation
token checked by every search worker at each branching step.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any
import time
import threading
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchBudget:
    """Limits of one solve; None means unlimited."""
    time_limit: Optional[float] = None  # seconds
    node_limit: Optional[int] = None    # branching decisions across all workers
    
    @property
    def is_unlimited(self) -> bool:
        return self.time_limit is None and self.node_limit is None


class CancellationToken:
    """
    Cooperative stop flag shared by all workers of a solve.
    
    Tripped by an external `cancel()`, by the deadline, or by the node
    limit. Workers only poll it between propagation calls, so a narrowing
    is never left half applied.
    """
    
    def __init__(self, budget: Optional[SearchBudget] = None):
        self.budget = budget or SearchBudget()
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._nodes = 0
        self._start_time: Optional[float] = None
        self._deadline: Optional[float] = None
        self.reason: Optional[str] = None
    
    def start(self):
        """Start the clock; the deadline counts from here."""
        self._start_time = time.monotonic()
        if self.budget.time_limit is not None:
            self._deadline = self._start_time + self.budget.time_limit
    
    def cancel(self, reason: str = "cancelled"):
        """Request every worker to stop."""
        with self._lock:
            if self.reason is None:
                self.reason = reason
                logger.warning(f"Search stop requested: {reason}")
        self._event.set()
    
    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
    
    @property
    def nodes(self) -> int:
        return self._nodes
    
    def tick(self) -> int:
        """Count one branching decision."""
        with self._lock:
            self._nodes += 1
            return self._nodes
    
    def should_stop(self) -> bool:
        """Poll the flag, the deadline and the node limit."""
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel(f"time limit of {self.budget.time_limit}s reached")
            return True
        if self.budget.node_limit is not None and self._nodes >= self.budget.node_limit:
            self.cancel(f"node limit of {self.budget.node_limit} reached")
            return True
        return False
    
    def elapsed(self) -> float:
        if self._start_time is None:
            return 0.0
        return time.monotonic() - self._start_time
    
    def remaining_time(self) -> Optional[float]:
        """Seconds left before the deadline, None without a time limit."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())
    
    def get_statistics(self) -> Dict[str, Any]:
        return {
            'nodes': self._nodes,
            'elapsed': self.elapsed(),
            'cancelled': self.cancelled,
            'stop_reason': self.reason
        }
