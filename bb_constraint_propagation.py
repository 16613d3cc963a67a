#!/usr/bin/env python3
"""
bb_constraint_propagation.py - Constraint Propagation Engine
===========================================================
Arc-consistency style work-queue propagation: constraints are revised until
a fixpoint is reached or a domain empties. Propagation is best-effort
pruning; search is still required for completeness.
"""

from typing import Dict, Optional, Any
from collections import deque
import logging

from bb_variable_store import VariableStore
from bb_constraint_model import ConstraintSystem

logger = logging.getLogger(__name__)


class PropagationQueue:
    """
    Queue of constraint indices pending revision.
    A constraint is never held twice; supports FIFO and LIFO processing.
    """
    
    def __init__(self, strategy: str = "fifo"):
        if strategy not in ("fifo", "lifo"):
            raise ValueError(f"Unknown queue strategy: {strategy}")
        self.strategy = strategy
        self.queue = deque()
        self.in_queue = set()
        self.enqueue_count = 0
        self.revision_count = 0
    
    def add(self, index: int):
        """Add a constraint to the queue unless already pending."""
        if index not in self.in_queue:
            self.queue.append(index)
            self.in_queue.add(index)
            self.enqueue_count += 1
    
    def pop(self) -> Optional[int]:
        """Get the next constraint to revise."""
        if not self.queue:
            return None
        
        index = self.queue.popleft() if self.strategy == "fifo" else self.queue.pop()
        self.in_queue.discard(index)
        self.revision_count += 1
        return index
    
    def has_items(self) -> bool:
        return len(self.queue) > 0
    
    def clear(self):
        self.queue.clear()
        self.in_queue.clear()
    
    def size(self) -> int:
        return len(self.queue)
    
    def get_statistics(self) -> Dict[str, Any]:
        return {
            'strategy': self.strategy,
            'current_size': self.size(),
            'enqueued': self.enqueue_count,
            'revisions': self.revision_count
        }


class ConstraintPropagationEngine:
    """
    Drives the constraints of a system over one variable store.
    
    Each search worker owns its engine and store; the constraint system is
    shared read-only.
    """
    
    def __init__(self, system: ConstraintSystem, store: VariableStore,
                 queue_strategy: str = "fifo"):
        self.system = system
        self.store = store
        self.queue = PropagationQueue(queue_strategy)
        
        # Statistics
        self.propagation_count = 0
        self.contradiction_count = 0
    
    def schedule_all(self):
        """Queue every constraint, e.g. before the root propagation."""
        for index in range(len(self.system)):
            self.queue.add(index)
    
    def _schedule_modified(self):
        """Queue every constraint watching a variable narrowed since last call."""
        watchers = self.system.watchers
        for var in self.store.drain_modified():
            for index in watchers.get(var, ()):
                self.queue.add(index)
    
    def propagate(self) -> bool:
        """
        Run to fixpoint.
        Returns False as soon as a constraint detects a contradiction; the
        caller is expected to restore the store.
        """
        self.propagation_count += 1
        constraints = self.system.constraints
        queue = self.queue
        
        self._schedule_modified()
        while queue.has_items():
            index = queue.pop()
            constraint = constraints[index]
            if not constraint.propagate(self.store):
                self.contradiction_count += 1
                queue.clear()
                self.store.drain_modified()
                logger.debug(f"Contradiction in {constraint.name}")
                return False
            self._schedule_modified()
        
        return True
    
    def get_statistics(self) -> Dict[str, Any]:
        """Get propagation engine statistics."""
        stats = {
            'propagation_count': self.propagation_count,
            'contradictions': self.contradiction_count,
        }
        stats.update(self.queue.get_statistics())
        return stats
