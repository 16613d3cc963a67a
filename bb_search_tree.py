#!/usr/bin/env python3
"""
bb_search_tree.py - Branch & Bound Search Tree System
===================================================
Search states, decision records of the explicit decision stack, search
statistics, the incumbent shared between workers, and the branching rules
that pick the next variable and the order of its values.
"""

import threading
from dataclasses import dataclass, field, asdict
from typing import Callable, Dict, List, Optional, Tuple, Any
from enum import Enum
import logging

from models import ProblemInstance, ComparisonOperator
from bb_variable_store import VariableLayout, VariableStore

logger = logging.getLogger(__name__)


class SearchState(Enum):
    """States of the search driver."""
    BRANCHING = "branching"
    PROPAGATING = "propagating"
    BOUNDING = "bounding"
    BACKTRACKING = "backtracking"
    SUCCESS = "success"
    INFEASIBLE = "infeasible"
    TIMED_OUT = "timed_out"
    
    @property
    def is_terminal(self) -> bool:
        return self in (SearchState.SUCCESS, SearchState.INFEASIBLE, SearchState.TIMED_OUT)


@dataclass
class Decision:
    """
    One level of the decision stack: the branching variable, the values
    still to try, and the store checkpoint taken before the first value.
    """
    variable: int
    values: List[int]
    snapshot: int
    tried: int = 0
    
    def next_value(self) -> Optional[int]:
        if self.tried >= len(self.values):
            return None
        value = self.values[self.tried]
        self.tried += 1
        return value


@dataclass
class SearchStatistics:
    """Counters of one search (or the merge of several worker searches)."""
    nodes: int = 0
    backtracks: int = 0
    propagations: int = 0
    contradictions: int = 0
    bound_prunes: int = 0
    solutions_found: int = 0
    max_depth: int = 0
    root_lower_bound: Optional[int] = None
    elapsed: float = 0.0
    
    def merge(self, other: 'SearchStatistics'):
        self.nodes += other.nodes
        self.backtracks += other.backtracks
        self.propagations += other.propagations
        self.contradictions += other.contradictions
        self.bound_prunes += other.bound_prunes
        self.solutions_found += other.solutions_found
        self.max_depth = max(self.max_depth, other.max_depth)
        if self.root_lower_bound is None:
            self.root_lower_bound = other.root_lower_bound
        elif other.root_lower_bound is not None:
            self.root_lower_bound = min(self.root_lower_bound, other.root_lower_bound)
    
    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SharedIncumbent:
    """
    Best solution found so far, shared by all workers of a solve.
    `cost` is read without locking; improvements are published under a
    short exclusive lock so a worker never overwrites a better solution.
    """
    
    def __init__(self, listener: Optional[Callable[[int], None]] = None):
        self._lock = threading.Lock()
        self.cost: Optional[int] = None
        self.values: Optional[Tuple[int, ...]] = None
        self.updates = 0
        self._listener = listener
    
    def offer(self, cost: int, values: Tuple[int, ...]) -> bool:
        """Publish a solution; True if it became the new incumbent."""
        with self._lock:
            if self.cost is not None and cost >= self.cost:
                return False
            self.cost = cost
            self.values = values
            self.updates += 1
        
        logger.info(f"New incumbent with cost {cost}")
        if self._listener is not None:
            self._listener(cost)
        return True
    
    @property
    def found(self) -> bool:
        return self.values is not None


@dataclass
class SearchOutcome:
    """Terminal state of one search driver run."""
    state: SearchState
    exhausted: bool
    found_solution: bool
    statistics: SearchStatistics = field(default_factory=SearchStatistics)


class BranchingRuleEngine:
    """
    Variable and value selection.
    
    Structural decisions come first: the open slot type with the smallest
    domain. Then assignment bits, component by component (see
    `_component_order`). Values favour unused slots and cheap
    offers so that cheap incumbents appear early.
    """
    
    def __init__(self, instance: ProblemInstance, layout: VariableLayout,
                 value_order: str = "price"):
        self.layout = layout
        self.type_vars = [layout.slot_type(s) for s in range(layout.slot_count)]
        self._type_var_set = frozenset(self.type_vars)
        
        component_order = self._component_order(instance)
        self.assignment_vars = [layout.assignment(c, s)
                                for c in component_order
                                for s in range(layout.slot_count)]
        
        prices = instance.price_vector
        if value_order == "price":
            ranked = sorted(range(1, layout.offer_count + 1),
                            key=lambda o: (int(prices[o - 1]), o))
        else:
            ranked = list(range(1, layout.offer_count + 1))
        self._offer_rank = {offer: rank for rank, offer in enumerate(ranked)}
        self._offer_rank[0] = -1
    
    @staticmethod
    def _component_order(instance: ProblemInstance) -> List[int]:
        """
        Components that must be deployed come first, then components whose
        presence other rules demand, then the rest; larger requirements first
        within each tier.
        """
        rules = instance.rules
        required = set()
        for rule in rules.cardinalities:
            if rule.operator is not ComparisonOperator.AT_MOST and rule.bound > 0:
                required.update(rule.components)
        demanded = {r.dependent for r in rules.colocations}
        demanded.update(r.provider for r in rules.ratios)
        demanded.update(r.consequent for r in rules.implications)
        
        requirements = instance.requirement_matrix
        
        def rank(c: int) -> Tuple[int, int, int]:
            name = instance.components[c].name
            tier = 0 if name in required else 1 if name in demanded else 2
            return tier, -int(requirements[c].sum()), c
        
        return sorted(range(instance.component_count), key=rank)
    
    def select_variable(self, store: VariableStore) -> Optional[int]:
        """Most constrained open variable, or None when everything is fixed."""
        best = None
        best_size = None
        for var in self.type_vars:
            size = len(store.current_domain(var))
            if size > 1 and (best_size is None or size < best_size):
                best, best_size = var, size
        if best is not None:
            return best
        
        for var in self.assignment_vars:
            if not store.is_fixed(var):
                return var
        
        # Derived fields are normally fixed through linking
        for var in range(self.layout.size):
            if not store.is_fixed(var):
                return var
        return None
    
    def order_values(self, store: VariableStore, variable: int) -> List[int]:
        """Values of `variable` in the order they should be tried."""
        domain = store.current_domain(variable)
        if variable in self._type_var_set:
            return sorted(domain, key=lambda o: self._offer_rank.get(o, o))
        if variable < self.layout.component_count * self.layout.slot_count:
            return sorted(domain, reverse=True)
        return sorted(domain)
    