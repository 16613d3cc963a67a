#!/usr/bin/env python3
"""
bb_parallel.py - Parallel Branch & Bound
========================================
Splits the search tree into independent subtrees at a shallow depth and
explores them concurrently. Workers share the read-only constraint system,
the incumbent (for pruning) and the cancellation token; each owns a private
copy of the variable store.
"""

import time
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import List
import logging

from models import ProblemInstance
from bb_variable_store import VariableLayout, VariableStore
from bb_constraint_model import ConstraintSystem
from bb_constraint_propagation import ConstraintPropagationEngine
from bb_bounding_functions import CostBoundCalculator
from bb_search_tree import (
    BranchingRuleEngine, SearchOutcome, SearchState, SearchStatistics, SharedIncumbent
)
from bb_search_strategies import DepthFirstBranchAndBound
from time_management import CancellationToken

logger = logging.getLogger(__name__)


@dataclass
class WorkItem:
    """
    One independent subtree: a propagated store reached from the root. The
    id spells out the path as `root/var=value/...`.
    """
    item_id: str
    store: VariableStore


@dataclass
class WorkResult:
    """Outcome of exploring one work item."""
    item_id: str
    outcome: SearchOutcome
    processing_time: float
    worker_id: str


class ParallelBranchAndBound:
    """
    Thread-based parallel driver.
    
    The root is propagated once, then expanded breadth-first for
    `split_depth` branching levels; every surviving child becomes a work
    item handled by a `DepthFirstBranchAndBound` on a pool thread.
    """
    
    def __init__(self, instance: ProblemInstance, layout: VariableLayout,
                 system: ConstraintSystem, token: CancellationToken,
                 incumbent: SharedIncumbent, max_workers: int = 4,
                 split_depth: int = 1, queue_strategy: str = "fifo",
                 value_order: str = "price", verify_incumbents: bool = False):
        self.instance = instance
        self.layout = layout
        self.system = system
        self.token = token
        self.incumbent = incumbent
        self.max_workers = max(1, max_workers)
        self.split_depth = max(1, split_depth)
        self.queue_strategy = queue_strategy
        self.verify_incumbents = verify_incumbents
        
        self.branching = BranchingRuleEngine(instance, layout, value_order)
    
    def run(self, store: VariableStore) -> SearchOutcome:
        """Explore the whole tree below `store`; the store itself is not modified."""
        start_time = time.time()
        statistics = SearchStatistics()
        
        root = store.clone()
        engine = ConstraintPropagationEngine(self.system, root, self.queue_strategy)
        engine.schedule_all()
        if not engine.propagate():
            logger.info("Root propagation failed, instance is infeasible")
            statistics.contradictions = 1
            statistics.elapsed = time.time() - start_time
            return SearchOutcome(SearchState.INFEASIBLE, True, False, statistics)
        
        root_bound = CostBoundCalculator(self.instance, self.layout).lower_bound(root)
        items = self._expand_frontier(root, statistics)
        logger.info(f"Split search into {len(items)} subtrees "
                    f"(depth {self.split_depth}, {self.max_workers} workers)")
        
        outcomes: List[SearchOutcome] = []
        with ThreadPoolExecutor(max_workers=self.max_workers,
                                thread_name_prefix="bb-worker") as executor:
            futures = {executor.submit(self._solve_item, item): item for item in items}
            for future in as_completed(futures):
                item = futures[future]
                try:
                    result = future.result()
                except Exception as e:
                    logger.error(f"Worker failed on subtree {item.item_id}: {e}", exc_info=True)
                    self.token.cancel(f"worker failure on {item.item_id}")
                    raise
                logger.debug(f"Subtree {result.item_id} finished on {result.worker_id} "
                             f"in {result.processing_time:.3f}s "
                             f"({result.outcome.state.value})")
                outcomes.append(result.outcome)
                statistics.merge(result.outcome.statistics)
        
        statistics.root_lower_bound = root_bound
        statistics.elapsed = time.time() - start_time
        
        exhausted = all(o.exhausted for o in outcomes)
        if not exhausted:
            state = SearchState.TIMED_OUT
        elif self.incumbent.found:
            state = SearchState.SUCCESS
        else:
            state = SearchState.INFEASIBLE
        
        return SearchOutcome(
            state=state,
            exhausted=exhausted,
            found_solution=any(o.found_solution for o in outcomes),
            statistics=statistics
        )
    
    def _expand_frontier(self, root: VariableStore,
                         statistics: SearchStatistics) -> List[WorkItem]:
        """Breadth-first expansion of the first `split_depth` branching levels."""
        frontier = [WorkItem("root", root)]
        
        for _ in range(self.split_depth):
            if self.token.should_stop():
                logger.info(f"Frontier expansion stopped: {self.token.reason}")
                break
            expanded: List[WorkItem] = []
            for item in frontier:
                variable = self.branching.select_variable(item.store)
                if variable is None:
                    expanded.append(item)
                    continue
                
                self.token.tick()
                statistics.nodes += 1
                for value in self.branching.order_values(item.store, variable):
                    child = item.store.clone()
                    if not child.assign(variable, value):
                        continue
                    engine = ConstraintPropagationEngine(self.system, child, self.queue_strategy)
                    if not engine.propagate():
                        statistics.contradictions += 1
                        continue
                    expanded.append(WorkItem(
                        item_id=f"{item.item_id}/{variable}={value}",
                        store=child
                    ))
            frontier = expanded
        
        return frontier
    
    def _solve_item(self, item: WorkItem) -> WorkResult:
        """Worker body: sequential branch & bound on one subtree."""
        worker_id = threading.current_thread().name
        start_time = time.time()
        
        search = DepthFirstBranchAndBound(
            store=item.store,
            system=self.system,
            branching=self.branching,
            bounding=CostBoundCalculator(self.instance, self.layout),
            token=self.token,
            incumbent=self.incumbent,
            queue_strategy=self.queue_strategy,
            verify_incumbents=self.verify_incumbents,
            name=item.item_id
        )
        outcome = search.run()
        
        return WorkResult(
            item_id=item.item_id,
            outcome=outcome,
            processing_time=time.time() - start_time,
            worker_id=worker_id
        )
