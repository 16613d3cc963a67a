"""
models.py - Core Data Models for the VM Placement Engine
========================================================
Defines the problem instance, placement rules, solutions and solve results
used throughout the system.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Tuple, Any
from enum import Enum
import numpy as np


# ============================================================================
# ERRORS
# ============================================================================

class PlacementError(Exception):
    """Base class for all placement engine errors."""


class InvalidInstanceError(PlacementError, ValueError):
    """Raised when a problem instance is malformed or cannot be hosted."""

    def __init__(self, message: str, issues: Optional[List['InstanceIssue']] = None):
        super().__init__(message)
        self.issues = list(issues or [])


class InternalConsistencyError(PlacementError, RuntimeError):
    """Raised when a solution produced by the engine fails re-verification."""


# ============================================================================
# ENUMERATIONS
# ============================================================================

class ComparisonOperator(Enum):
    """Operators allowed in cardinality rules."""
    EQUAL = "="
    AT_LEAST = ">="
    AT_MOST = "<="

    @classmethod
    def parse(cls, text: str) -> 'ComparisonOperator':
        """Parse an operator from its symbol or name."""
        aliases = {
            '=': cls.EQUAL, '==': cls.EQUAL, 'eq': cls.EQUAL, 'equal': cls.EQUAL,
            '>=': cls.AT_LEAST, 'ge': cls.AT_LEAST, 'lower': cls.AT_LEAST, 'at_least': cls.AT_LEAST,
            '<=': cls.AT_MOST, 'le': cls.AT_MOST, 'upper': cls.AT_MOST, 'at_most': cls.AT_MOST,
        }
        key = str(text).strip().lower()
        if key not in aliases:
            raise InvalidInstanceError(f"Unknown comparison operator: {text!r}")
        return aliases[key]

    def holds(self, value: int, bound: int) -> bool:
        if self is ComparisonOperator.EQUAL:
            return value == bound
        if self is ComparisonOperator.AT_LEAST:
            return value >= bound
        return value <= bound


class SolveStatus(Enum):
    """Outcome of a solve attempt."""
    OPTIMAL = "optimal"        # Search exhausted, incumbent is the global optimum
    FEASIBLE = "feasible"      # Limit reached, incumbent not proven optimal
    INFEASIBLE = "infeasible"  # No valid placement exists
    TIMED_OUT = "timed_out"    # Limit reached before any placement was found


# ============================================================================
# INSTANCE DATA
# ============================================================================

@dataclass(frozen=True)
class Component:
    """An application component with one requirement per hardware dimension."""
    name: str
    requirements: Tuple[int, ...]


@dataclass(frozen=True)
class VMOffer:
    """A priced VM flavor a slot may instantiate."""
    name: str
    capacities: Tuple[int, ...]
    price: int


@dataclass(frozen=True)
class CardinalityRule:
    """Combined deployment count of `components` compared against `bound`."""
    components: Tuple[str, ...]
    operator: ComparisonOperator
    bound: int


@dataclass(frozen=True)
class ConflictRule:
    """`component` may not share a slot with any of `conflicts_with`."""
    component: str
    conflicts_with: Tuple[str, ...]


@dataclass(frozen=True)
class RatioRule:
    """
    Scaled inequality between deployment counts:
    consumer_ratio * count(consumer) <= provider_ratio * count(provider).
    """
    consumer: str
    provider: str
    consumer_ratio: int = 1
    provider_ratio: int = 1

    @classmethod
    def provide(cls, provider: str, consumer: str, capacity: int) -> 'RatioRule':
        """One provider instance serves at most `capacity` consumer instances."""
        return cls(consumer=consumer, provider=provider,
                   consumer_ratio=1, provider_ratio=capacity)


@dataclass(frozen=True)
class ImplicationRule:
    """If `antecedent` is deployed at least once, so is `consequent`."""
    antecedent: str
    consequent: str


@dataclass(frozen=True)
class ColocationRule:
    """
    On every slot hosting one of `primaries`, the presence of `dependent`
    equals the summed presence of the primaries.
    """
    dependent: str
    primaries: Tuple[str, ...]


@dataclass(frozen=True)
class PlacementRules:
    """The structural rule catalogue of one application topology."""
    cardinalities: Tuple[CardinalityRule, ...] = ()
    conflicts: Tuple[ConflictRule, ...] = ()
    ratios: Tuple[RatioRule, ...] = ()
    implications: Tuple[ImplicationRule, ...] = ()
    colocations: Tuple[ColocationRule, ...] = ()

    def referenced_components(self) -> List[str]:
        """All component names mentioned by any rule."""
        names: List[str] = []
        for rule in self.cardinalities:
            names.extend(rule.components)
        for rule in self.conflicts:
            names.append(rule.component)
            names.extend(rule.conflicts_with)
        for rule in self.ratios:
            names.extend((rule.consumer, rule.provider))
        for rule in self.implications:
            names.extend((rule.antecedent, rule.consequent))
        for rule in self.colocations:
            names.append(rule.dependent)
            names.extend(rule.primaries)
        return names

    def to_dict(self) -> Dict[str, Any]:
        return {
            'cardinalities': [
                {'components': list(r.components), 'operator': r.operator.value, 'bound': r.bound}
                for r in self.cardinalities
            ],
            'conflicts': [
                {'component': r.component, 'conflicts_with': list(r.conflicts_with)}
                for r in self.conflicts
            ],
            'ratios': [
                {'consumer': r.consumer, 'provider': r.provider,
                 'consumer_ratio': r.consumer_ratio, 'provider_ratio': r.provider_ratio}
                for r in self.ratios
            ],
            'implications': [
                {'antecedent': r.antecedent, 'consequent': r.consequent}
                for r in self.implications
            ],
            'colocations': [
                {'dependent': r.dependent, 'primaries': list(r.primaries)}
                for r in self.colocations
            ],
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'PlacementRules':
        data = data or {}
        return cls(
            cardinalities=tuple(
                CardinalityRule(tuple(r['components']), ComparisonOperator.parse(r['operator']),
                                int(r['bound']))
                for r in data.get('cardinalities', [])
            ),
            conflicts=tuple(
                ConflictRule(r['component'], tuple(r['conflicts_with']))
                for r in data.get('conflicts', [])
            ),
            ratios=tuple(
                RatioRule(r['consumer'], r['provider'],
                          int(r.get('consumer_ratio', 1)), int(r.get('provider_ratio', 1)))
                for r in data.get('ratios', [])
            ),
            implications=tuple(
                ImplicationRule(r['antecedent'], r['consequent'])
                for r in data.get('implications', [])
            ),
            colocations=tuple(
                ColocationRule(r['dependent'], tuple(r['primaries']))
                for r in data.get('colocations', [])
            ),
        )


@dataclass
class ProblemInstance:
    """
    Complete, in-memory description of one placement problem.
    Immutable for the duration of a solve; the engine never mutates it.
    """
    components: List[Component]
    offers: List[VMOffer]
    slot_count: int
    rules: PlacementRules = field(default_factory=PlacementRules)
    dimensions: Tuple[str, ...] = ("cpu", "memory", "storage")
    name: str = "instance"

    @property
    def component_count(self) -> int:
        return len(self.components)

    @property
    def offer_count(self) -> int:
        return len(self.offers)

    @property
    def dimension_count(self) -> int:
        return len(self.dimensions)

    @property
    def component_names(self) -> List[str]:
        return [c.name for c in self.components]

    @property
    def offer_names(self) -> List[str]:
        return [o.name for o in self.offers]

    @property
    def requirement_matrix(self) -> np.ndarray:
        """N x H matrix of component requirements."""
        return np.array([c.requirements for c in self.components],
                        dtype=np.int64).reshape(self.component_count, self.dimension_count)

    @property
    def capacity_matrix(self) -> np.ndarray:
        """O x H matrix of offer capacities."""
        return np.array([o.capacities for o in self.offers],
                        dtype=np.int64).reshape(self.offer_count, self.dimension_count)

    @property
    def price_vector(self) -> np.ndarray:
        """O-length vector of offer prices."""
        return np.array([o.price for o in self.offers], dtype=np.int64)

    def component_index(self, name: str) -> int:
        """0-based index of a component by name."""
        for index, component in enumerate(self.components):
            if component.name == name:
                return index
        raise InvalidInstanceError(f"Unknown component: {name!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'slots': self.slot_count,
            'dimensions': list(self.dimensions),
            'components': [
                {'name': c.name, 'requirements': list(c.requirements)} for c in self.components
            ],
            'offers': [
                {'name': o.name, 'capacities': list(o.capacities), 'price': o.price}
                for o in self.offers
            ],
            'rules': self.rules.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProblemInstance':
        """Build an instance from the JSON/YAML layout produced by `to_dict`."""
        try:
            return cls(
                components=[
                    Component(c['name'], tuple(int(v) for v in c['requirements']))
                    for c in data['components']
                ],
                offers=[
                    VMOffer(o['name'], tuple(int(v) for v in o['capacities']), int(o['price']))
                    for o in data['offers']
                ],
                slot_count=int(data['slots']),
                rules=PlacementRules.from_dict(data.get('rules')),
                dimensions=tuple(data.get('dimensions', ("cpu", "memory", "storage"))),
                name=data.get('name', 'instance'),
            )
        except (KeyError, TypeError) as e:
            raise InvalidInstanceError(f"Malformed instance data: {e}") from e


@dataclass(frozen=True)
class InstanceIssue:
    """A component that no VM offer can host."""
    component: str
    dimension: Optional[str]
    requirement: int
    max_capacity: int

    @property
    def description(self) -> str:
        if self.dimension is None:
            return (f"Component {self.component!r} fits no single offer "
                    f"in all dimensions at once")
        return (f"Component {self.component!r} requires {self.requirement} "
                f"{self.dimension} but the largest offer provides {self.max_capacity}")


# ============================================================================
# SOLUTIONS
# ============================================================================

@dataclass
class PlacementSolution:
    """Externally visible placement: assignment, per-slot flavors and cost."""
    assignment: np.ndarray       # N x V, 0/1
    slot_types: np.ndarray       # V, 0 = unused, otherwise 1-based offer id
    slot_resources: np.ndarray   # V x H, capacities of the chosen offer
    slot_prices: np.ndarray      # V
    total_cost: int
    component_names: List[str] = field(default_factory=list)
    offer_names: List[str] = field(default_factory=list)

    def deployment_counts(self) -> Dict[str, int]:
        """Number of slots hosting each component."""
        counts = self.assignment.sum(axis=1)
        return {name: int(counts[i]) for i, name in enumerate(self.component_names)}

    def used_slots(self) -> List[int]:
        return [int(s) for s in np.flatnonzero(self.slot_types > 0)]

    def hosted_components(self, slot: int) -> List[str]:
        return [self.component_names[c] for c in np.flatnonzero(self.assignment[:, slot])]

    def offer_name(self, slot: int) -> Optional[str]:
        offer_id = int(self.slot_types[slot])
        return self.offer_names[offer_id - 1] if offer_id > 0 else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_cost': int(self.total_cost),
            'assignment': self.assignment.astype(int).tolist(),
            'slot_types': self.slot_types.astype(int).tolist(),
            'slot_prices': self.slot_prices.astype(int).tolist(),
            'slot_resources': self.slot_resources.astype(int).tolist(),
            'slots': [
                {'slot': s, 'offer': self.offer_name(s), 'components': self.hosted_components(s)}
                for s in self.used_slots()
            ],
            'deployment_counts': self.deployment_counts(),
        }


@dataclass
class SolveResult:
    """Result of a solve attempt, as handed back to I/O adapters."""
    status: SolveStatus
    solution: Optional[PlacementSolution] = None
    issues: List[InstanceIssue] = field(default_factory=list)
    statistics: Dict[str, Any] = field(default_factory=dict)
    solve_time: float = 0.0

    @property
    def proven_optimal(self) -> bool:
        return self.status is SolveStatus.OPTIMAL

    @property
    def has_solution(self) -> bool:
        return self.solution is not None

    @property
    def total_cost(self) -> Optional[int]:
        return self.solution.total_cost if self.solution is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'proven_optimal': self.proven_optimal,
            'solve_time': self.solve_time,
            'solution': self.solution.to_dict() if self.solution is not None else None,
            'issues': [issue.description for issue in self.issues],
            'statistics': dict(self.statistics),
        }
