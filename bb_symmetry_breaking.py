#!/usr/bin/env python3
"""
bb_symmetry_breaking.py - Symmetry Breaking Mechanisms
======================================================
VM slots are interchangeable: every placement constraint is invariant under
a permutation of slot indices. Lexicographic ordering of slot types keeps a
single canonical representative of each class of equivalent placements.
"""

from typing import List
import logging

from bb_variable_store import VariableLayout, VariableStore
from bb_constraint_model import (
    Constraint, ConstraintCategory, ConstraintSystem, Satisfaction
)

logger = logging.getLogger(__name__)


class SlotOrderingConstraint(Constraint):
    """
    type[s] >= type[s+1]. Unused slots (type 0) therefore come last and
    used slots appear in non-increasing offer id order.
    """
    
    category = ConstraintCategory.SYMMETRY
    
    def __init__(self, layout: VariableLayout, slot: int):
        self.left = layout.slot_type(slot)
        self.right = layout.slot_type(slot + 1)
        super().__init__(f"slot_order[s={slot}>=s={slot + 1}]", [self.left, self.right])
    
    def is_satisfied(self, store: VariableStore) -> Satisfaction:
        if store.max_value(self.left) < store.min_value(self.right):
            return Satisfaction.VIOLATED
        if store.min_value(self.left) >= store.max_value(self.right):
            return Satisfaction.SATISFIED
        return Satisfaction.UNDETERMINED
    
    def propagate(self, store: VariableStore) -> bool:
        if not store.restrict_bounds(self.left, store.min_value(self.right), store.max_value(self.left)):
            return False
        return store.restrict_bounds(self.right, store.min_value(self.right), store.max_value(self.left))


def create_slot_ordering(layout: VariableLayout) -> List[SlotOrderingConstraint]:
    """Ordering constraints between consecutive slots."""
    return [SlotOrderingConstraint(layout, slot) for slot in range(layout.slot_count - 1)]


def add_symmetry_breaking(system: ConstraintSystem) -> int:
    """Add slot ordering to a constraint system; returns the number added."""
    constraints = create_slot_ordering(system.layout)
    for constraint in constraints:
        system.add(constraint)
    logger.debug(f"Added {len(constraints)} slot ordering constraints")
    return len(constraints)
