#!/usr/bin/env python3
"""
solution_validation.py - Solution Extraction and Verification
=============================================================
Turns a complete variable store into a `PlacementSolution` and checks a
solution against the placement constraint catalogue and the structural
invariants (capacity, offer linking, cost).
"""

from typing import List, Dict, Optional, Any
from dataclasses import dataclass, field
from enum import Enum
import numpy as np
import logging

from models import ProblemInstance, PlacementSolution, InternalConsistencyError
from bb_variable_store import VariableLayout, VariableStore
from bb_constraint_model import ConstraintSystem, build_constraint_system

logger = logging.getLogger(__name__)


class ValidationErrorType(Enum):
    SHAPE_MISMATCH = "shape_mismatch"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    OFFER_MISMATCH = "offer_mismatch"
    COST_MISMATCH = "cost_mismatch"
    CONSTRAINT_VIOLATION = "constraint_violation"


@dataclass
class ValidationIssue:
    error_type: ValidationErrorType
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationResult:
    is_valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)
    
    @property
    def error_count(self) -> int:
        return len(self.issues)
    
    def summary(self) -> str:
        if self.is_valid:
            return "valid"
        return "; ".join(issue.message for issue in self.issues)


class SolutionExtractor:
    """Reads complete stores back into placement solutions."""
    
    def __init__(self, instance: ProblemInstance, layout: Optional[VariableLayout] = None):
        self.instance = instance
        self.layout = layout or VariableLayout.for_instance(instance)
    
    def extract(self, store: VariableStore) -> PlacementSolution:
        """Build the solution of a complete store (raises if a variable is open)."""
        if not store.is_complete():
            raise InternalConsistencyError("Cannot extract a solution from an incomplete store")
        return self.from_values(store.values())
    
    def from_values(self, values) -> PlacementSolution:
        layout = self.layout
        flat = np.asarray(values, dtype=int)
        n, v, h = layout.component_count, layout.slot_count, layout.dimension_count
        
        assignment = flat[:n * v].reshape(n, v)
        slot_types = flat[[layout.slot_type(s) for s in range(v)]]
        slot_resources = flat[[layout.resource(s, d) for s in range(v) for d in range(h)]].reshape(v, h)
        slot_prices = flat[[layout.price(s) for s in range(v)]]
        
        return PlacementSolution(
            assignment=assignment,
            slot_types=slot_types,
            slot_resources=slot_resources,
            slot_prices=slot_prices,
            total_cost=int(slot_prices.sum()),
            component_names=self.instance.component_names,
            offer_names=self.instance.offer_names
        )


def store_from_solution(instance: ProblemInstance, solution: PlacementSolution,
                        layout: Optional[VariableLayout] = None) -> VariableStore:
    """Fully fixed store holding the values of a solution."""
    layout = layout or VariableLayout.for_instance(instance)
    values = [0] * layout.size
    
    for c in range(layout.component_count):
        for s in range(layout.slot_count):
            values[layout.assignment(c, s)] = int(solution.assignment[c, s])
    for s in range(layout.slot_count):
        values[layout.slot_type(s)] = int(solution.slot_types[s])
        values[layout.occupancy(s)] = int(solution.slot_types[s] > 0)
        values[layout.price(s)] = int(solution.slot_prices[s])
        for d in range(layout.dimension_count):
            values[layout.resource(s, d)] = int(solution.slot_resources[s, d])
    
    return VariableStore.from_values(layout, values)


def _check_structure(instance: ProblemInstance, solution: PlacementSolution) -> List[ValidationIssue]:
    """Array-level invariants of a solution."""
    n, v, h = instance.component_count, instance.slot_count, instance.dimension_count
    expected = {
        'assignment': (n, v),
        'slot_types': (v,),
        'slot_resources': (v, h),
        'slot_prices': (v,),
    }
    issues = []
    for name, shape in expected.items():
        actual = np.shape(getattr(solution, name))
        if actual != shape:
            issues.append(ValidationIssue(
                ValidationErrorType.SHAPE_MISMATCH,
                f"{name} has shape {actual}, expected {shape}"
            ))
    if issues:
        return issues
    
    if np.any((solution.slot_types < 0) | (solution.slot_types > instance.offer_count)):
        return [ValidationIssue(ValidationErrorType.OFFER_MISMATCH, "Slot type outside 0..O")]
    
    # Row 0 stands for an unused slot
    capacities = np.vstack([np.zeros((1, h), dtype=int), instance.capacity_matrix])
    prices = np.concatenate([[0], instance.price_vector])
    chosen_capacities = capacities[solution.slot_types]
    
    for s in np.flatnonzero(np.any(solution.slot_resources != chosen_capacities, axis=1)):
        issues.append(ValidationIssue(
            ValidationErrorType.OFFER_MISMATCH,
            f"Slot {s} resources {solution.slot_resources[s].tolist()} do not match its offer",
            {'slot': int(s)}
        ))
    for s in np.flatnonzero(solution.slot_prices != prices[solution.slot_types]):
        issues.append(ValidationIssue(
            ValidationErrorType.OFFER_MISMATCH,
            f"Slot {s} price {int(solution.slot_prices[s])} does not match its offer",
            {'slot': int(s)}
        ))
    
    load = solution.assignment.T @ instance.requirement_matrix
    for s, d in np.argwhere(load > chosen_capacities):
        issues.append(ValidationIssue(
            ValidationErrorType.CAPACITY_EXCEEDED,
            f"Slot {s} {instance.dimensions[d]} load {int(load[s, d])} exceeds "
            f"capacity {int(chosen_capacities[s, d])}",
            {'slot': int(s), 'dimension': instance.dimensions[d]}
        ))
    
    if int(solution.slot_prices.sum()) != int(solution.total_cost):
        issues.append(ValidationIssue(
            ValidationErrorType.COST_MISMATCH,
            f"Total cost {solution.total_cost} differs from slot prices sum "
            f"{int(solution.slot_prices.sum())}"
        ))
    return issues


def verify_solution(instance: ProblemInstance, solution: PlacementSolution,
                    system: Optional[ConstraintSystem] = None) -> ValidationResult:
    """
    Check a solution against the placement rules.
    
    `system` should be the catalogue without search-only constraints such
    as slot ordering; it is built from the instance when omitted. The check
    has no side effects, so verifying twice yields the same result.
    """
    issues = _check_structure(instance, solution)
    if not any(i.error_type is ValidationErrorType.SHAPE_MISMATCH for i in issues):
        layout = system.layout if system is not None else VariableLayout.for_instance(instance)
        system = system or build_constraint_system(instance, layout)
        store = store_from_solution(instance, solution, layout)
        for constraint in system.unsatisfied(store):
            issues.append(ValidationIssue(
                ValidationErrorType.CONSTRAINT_VIOLATION,
                f"Constraint {constraint.name} is violated",
                {'category': constraint.category.value}
            ))
    
    return ValidationResult(is_valid=not issues, issues=issues)


def ensure_valid(instance: ProblemInstance, solution: PlacementSolution,
                 system: Optional[ConstraintSystem] = None) -> ValidationResult:
    """Like `verify_solution`, but an invalid solution is an internal error."""
    result = verify_solution(instance, solution, system)
    if not result.is_valid:
        logger.error(f"Search produced an invalid solution: {result.summary()}")
        raise InternalConsistencyError(f"Invalid solution: {result.summary()}")
    return result
