#!/usr/bin/env python3
"""
placement_solver.py - VM Placement Solver
=========================================
Entry point of the engine: validates an instance, builds the variable store
and constraint catalogue, runs the (sequential or parallel) branch & bound
search and hands back a verified `SolveResult`.
"""

import time
from dataclasses import dataclass, replace
from typing import Callable, Optional
import logging

from config import Config
from models import ProblemInstance, SolveResult, SolveStatus
from instance_validation import validate_instance
from bb_variable_store import VariableLayout, VariableStore
from bb_constraint_model import build_constraint_system
from bb_symmetry_breaking import add_symmetry_breaking
from bb_bounding_functions import CostBoundCalculator
from bb_search_tree import BranchingRuleEngine, SearchOutcome, SharedIncumbent
from bb_search_strategies import DepthFirstBranchAndBound
from bb_parallel import ParallelBranchAndBound
from solution_validation import SolutionExtractor, ensure_valid
from utils import timer
from time_management import CancellationToken, SearchBudget

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SolverSettings:
    """Immutable snapshot of the solver configuration used by one solve."""
    time_limit: Optional[float] = 30.0
    node_limit: Optional[int] = None
    symmetry_breaking: bool = True
    queue_strategy: str = "fifo"
    value_order: str = "price"
    verify_incumbents: bool = False
    parallel: bool = False
    max_workers: int = 1
    split_depth: int = 1
    
    @classmethod
    def from_config(cls, **overrides) -> 'SolverSettings':
        """Settings from `Config`, with keyword overrides (None = keep config value)."""
        solver = Config.SOLVER
        parallel = Config.PERFORMANCE.get('parallel', {})
        settings = cls(
            time_limit=solver.get('time_limit'),
            node_limit=solver.get('node_limit'),
            symmetry_breaking=solver.get('symmetry_breaking', True),
            queue_strategy=solver.get('queue_strategy', 'fifo'),
            value_order=solver.get('value_order', 'price'),
            verify_incumbents=solver.get('verify_incumbents', False),
            parallel=parallel.get('enabled', False),
            max_workers=parallel.get('max_workers', 1),
            split_depth=parallel.get('split_depth', 1)
        )
        return replace(settings, **{k: v for k, v in overrides.items() if v is not None})
    
    @property
    def budget(self) -> SearchBudget:
        return SearchBudget(time_limit=self.time_limit, node_limit=self.node_limit)


def determine_status(found_solution: bool, exhausted: bool) -> SolveStatus:
    """Map search completion onto the externally visible status."""
    if found_solution:
        return SolveStatus.OPTIMAL if exhausted else SolveStatus.FEASIBLE
    return SolveStatus.INFEASIBLE if exhausted else SolveStatus.TIMED_OUT


class PlacementSolver:
    """
    Minimum-cost placement of components onto a pool of VM slots.
    
    A solver instance holds settings only, so it can be reused for any
    number of instances.
    """
    
    def __init__(self, settings: Optional[SolverSettings] = None):
        self.settings = settings or SolverSettings.from_config()
    
    def solve(self, instance: ProblemInstance, token: Optional[CancellationToken] = None,
              on_incumbent: Optional[Callable[[int], None]] = None) -> SolveResult:
        """
        Solve one instance.
        
        Args:
            instance: Problem to solve
            token: External cancellation token; one with the configured
                budget is created when omitted
            on_incumbent: Called with the cost of every improving solution
        
        Raises:
            InvalidInstanceError: malformed instance
            InternalConsistencyError: the search produced an invalid solution
        """
        settings = self.settings
        start_time = time.time()
        logger.info(f"Solving '{instance.name}': {instance.component_count} components, "
                    f"{instance.offer_count} offers, {instance.slot_count} slots")
        
        issues = validate_instance(instance)
        if issues:
            logger.info(f"'{instance.name}' is infeasible: "
                        f"{len(issues)} component(s) cannot be hosted by any offer")
            return SolveResult(
                status=SolveStatus.INFEASIBLE,
                issues=issues,
                statistics={'nodes': 0},
                solve_time=time.time() - start_time
            )
        
        layout = VariableLayout.for_instance(instance)
        store = VariableStore.create_from_instance(instance)
        catalogue = build_constraint_system(instance, layout)
        search_system = build_constraint_system(instance, layout)
        if settings.symmetry_breaking:
            add_symmetry_breaking(search_system)
        logger.debug(f"Constraint catalogue: {search_system.count_by_category()}")
        
        if token is None:
            token = CancellationToken(settings.budget)
        token.start()
        incumbent = SharedIncumbent(listener=on_incumbent)
        
        if settings.parallel and settings.max_workers > 1:
            outcome = ParallelBranchAndBound(
                instance, layout, search_system, token, incumbent,
                max_workers=settings.max_workers,
                split_depth=settings.split_depth,
                queue_strategy=settings.queue_strategy,
                value_order=settings.value_order,
                verify_incumbents=settings.verify_incumbents
            ).run(store)
        else:
            outcome = self._run_sequential(instance, layout, store, search_system,
                                           token, incumbent)
        
        status = determine_status(incumbent.found, outcome.exhausted)
        solution = None
        if incumbent.found:
            solution = SolutionExtractor(instance, layout).from_values(incumbent.values)
            ensure_valid(instance, solution, catalogue)
        
        if not outcome.exhausted:
            logger.warning(f"Search stopped early ({token.reason or 'limit reached'})")
        
        statistics = outcome.statistics.to_dict()
        statistics.update(token.get_statistics())
        solve_time = time.time() - start_time
        logger.info(f"'{instance.name}' finished: {status.value}"
                    + (f", cost {solution.total_cost}" if solution is not None else "")
                    + f" in {solve_time:.2f}s")
        
        return SolveResult(
            status=status,
            solution=solution,
            statistics=statistics,
            solve_time=solve_time
        )
    
    @timer
    def _run_sequential(self, instance, layout, store, system, token, incumbent) -> SearchOutcome:
        settings = self.settings
        return DepthFirstBranchAndBound(
            store=store,
            system=system,
            branching=BranchingRuleEngine(instance, layout, settings.value_order),
            bounding=CostBoundCalculator(instance, layout),
            token=token,
            incumbent=incumbent,
            queue_strategy=settings.queue_strategy,
            verify_incumbents=settings.verify_incumbents
        ).run()


def solve_placement(instance: ProblemInstance, **overrides) -> SolveResult:
    """Solve with settings from `Config`, overridden by keyword arguments."""
    return PlacementSolver(SolverSettings.from_config(**overrides)).solve(instance)
