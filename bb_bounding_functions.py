#!/usr/bin/env python3
"""
bb_bounding_functions.py - Bounding Functions for Branch & Bound
================================================================
Lower bounds on the total placement cost reachable from a partial
assignment, used to prune subtrees that cannot beat the incumbent.
"""

from dataclasses import dataclass
from typing import Optional
from enum import Enum
import numpy as np

from models import ProblemInstance
from bb_variable_store import VariableLayout, VariableStore


class BoundingMethod(Enum):
    """Available lower-bound methods."""
    SLOT_MINIMUM = "slot_minimum"        # cheapest remaining price per slot
    COMMITTED_ONLY = "committed_only"    # prices of fully decided slots


@dataclass
class BoundingResults:
    """Lower bound of one node and how it splits."""
    committed_cost: int
    estimated_cost: int
    
    @property
    def lower_bound(self) -> int:
        return self.committed_cost + self.estimated_cost


class CostBoundCalculator:
    """
    Cost = sum of slot prices. A slot whose price is decided contributes that
    price; an undecided slot contributes the cheapest price left in its
    domain, which is 0 while the slot may still stay unused.
    """
    
    def __init__(self, instance: ProblemInstance, layout: Optional[VariableLayout] = None,
                 method: BoundingMethod = BoundingMethod.SLOT_MINIMUM):
        self.layout = layout or VariableLayout.for_instance(instance)
        self.method = method
        self.price_vars = [self.layout.price(s) for s in range(self.layout.slot_count)]
        self.bound_count = 0
    
    def compute(self, store: VariableStore) -> BoundingResults:
        committed = estimated = 0
        for var in self.price_vars:
            domain = store.current_domain(var)
            if len(domain) == 1:
                committed += next(iter(domain))
            elif self.method is BoundingMethod.SLOT_MINIMUM:
                estimated += min(domain)
        self.bound_count += 1
        return BoundingResults(committed, estimated)
    
    def lower_bound(self, store: VariableStore) -> int:
        return self.compute(store).lower_bound
    
    def solution_cost(self, store: VariableStore) -> int:
        """Exact cost of a complete store."""
        return int(np.sum([store.value(var) for var in self.price_vars]))
    
    def is_prunable(self, store: VariableStore, incumbent_cost: Optional[int]) -> bool:
        """True when no completion of this node can beat the incumbent."""
        if incumbent_cost is None:
            return False
        return self.lower_bound(store) >= incumbent_cost
