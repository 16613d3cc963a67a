#!/usr/bin/env python3
"""
bb_search_strategies.py - Depth-First Branch & Bound Driver
===========================================================
Explicit state machine over an explicit decision stack:
branch -> propagate -> bound -> backtrack/accept, with snapshot/restore
of the variable store between sibling decisions.
"""

import time
from typing import Callable, Dict, List, Optional
import logging

from models import InternalConsistencyError
from bb_variable_store import VariableStore
from bb_constraint_model import ConstraintSystem
from bb_constraint_propagation import ConstraintPropagationEngine
from bb_bounding_functions import CostBoundCalculator
from bb_search_tree import (
    BranchingRuleEngine, Decision, SearchOutcome, SearchState, SearchStatistics,
    SharedIncumbent
)
from time_management import CancellationToken

logger = logging.getLogger(__name__)


class DepthFirstBranchAndBound:
    """
    Sequential depth-first branch & bound over one variable store.
    
    Runs to exhaustion (proving optimality or infeasibility of its subtree)
    unless the cancellation token trips, in which case the incumbent found
    so far stands but is not proven optimal.
    """
    
    def __init__(self, store: VariableStore, system: ConstraintSystem,
                 branching: BranchingRuleEngine, bounding: CostBoundCalculator,
                 token: CancellationToken, incumbent: SharedIncumbent,
                 queue_strategy: str = "fifo", verify_incumbents: bool = False,
                 name: str = "search"):
        self.store = store
        self.system = system
        self.branching = branching
        self.bounding = bounding
        self.token = token
        self.incumbent = incumbent
        self.verify_incumbents = verify_incumbents
        self.name = name
        
        self.engine = ConstraintPropagationEngine(system, store, queue_strategy)
        self.statistics = SearchStatistics()
        self._stack: List[Decision] = []
        self._root_bound: Optional[int] = None
        self._found = False
        
        self._handlers: Dict[SearchState, Callable[[], SearchState]] = {
            SearchState.BRANCHING: self._branch,
            SearchState.PROPAGATING: self._propagate,
            SearchState.BOUNDING: self._bound,
            SearchState.BACKTRACKING: self._backtrack,
        }
    
    def run(self) -> SearchOutcome:
        """Search until a terminal state is reached."""
        start_time = time.time()
        logger.debug(f"[{self.name}] starting on {self.store}")
        
        self.engine.schedule_all()
        state = SearchState.PROPAGATING
        while not state.is_terminal:
            state = self._handlers[state]()
        
        self.statistics.elapsed = time.time() - start_time
        self.statistics.propagations = self.engine.propagation_count
        self.statistics.contradictions = self.engine.contradiction_count
        
        logger.debug(f"[{self.name}] finished in state {state.value} after "
                     f"{self.statistics.nodes} nodes, {self.statistics.backtracks} backtracks")
        
        return SearchOutcome(
            state=state,
            exhausted=state is not SearchState.TIMED_OUT,
            found_solution=self._found,
            statistics=self.statistics
        )
    
    # ------------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------------
    
    def _branch(self) -> SearchState:
        if self.token.should_stop():
            return SearchState.TIMED_OUT
        
        variable = self.branching.select_variable(self.store)
        if variable is None:
            return SearchState.PROPAGATING
        
        self.token.tick()
        self.statistics.nodes += 1
        decision = Decision(variable, self.branching.order_values(self.store, variable),
                            self.store.snapshot())
        self._stack.append(decision)
        self.statistics.max_depth = max(self.statistics.max_depth, len(self._stack))
        
        return self._try_next_value(decision) or SearchState.BACKTRACKING
    
    def _propagate(self) -> SearchState:
        if not self.engine.propagate():
            return SearchState.BACKTRACKING
        
        if not self._stack and self._root_bound is None:
            self._root_bound = self.bounding.lower_bound(self.store)
            self.statistics.root_lower_bound = self._root_bound
        
        if self.store.is_complete():
            return self._accept()
        return SearchState.BOUNDING
    
    def _bound(self) -> SearchState:
        if self.bounding.is_prunable(self.store, self.incumbent.cost):
            self.statistics.bound_prunes += 1
            return SearchState.BACKTRACKING
        return SearchState.BRANCHING
    
    def _backtrack(self) -> SearchState:
        self.statistics.backtracks += 1
        while self._stack:
            decision = self._stack[-1]
            self.store.restore(decision.snapshot)
            state = self._try_next_value(decision)
            if state is not None:
                return state
            self._stack.pop()
        
        return SearchState.SUCCESS if self.incumbent.found else SearchState.INFEASIBLE
    
    # ------------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------------
    
    def _try_next_value(self, decision: Decision) -> Optional[SearchState]:
        """Tentatively assign the next untried value of a decision."""
        while True:
            value = decision.next_value()
            if value is None:
                return None
            if self.store.assign(decision.variable, value):
                return SearchState.PROPAGATING
    
    def _accept(self) -> SearchState:
        """Handle a fully assigned, propagated store."""
        self.statistics.solutions_found += 1
        
        if self.verify_incumbents:
            unsatisfied = self.system.unsatisfied(self.store)
            if unsatisfied:
                raise InternalConsistencyError(
                    f"Complete assignment violates {[c.name for c in unsatisfied]}")
        
        cost = self.bounding.solution_cost(self.store)
        if self.incumbent.offer(cost, self.store.values()):
            self._found = True
            logger.debug(f"[{self.name}] incumbent {cost} at depth {len(self._stack)}")
        
        best = self.incumbent.cost
        if self._root_bound is not None and best is not None and best <= self._root_bound:
            # Nothing in this subtree can be cheaper than its root bound
            return SearchState.SUCCESS
        return SearchState.BACKTRACKING
