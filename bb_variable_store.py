#!/usr/bin/env python3
"""
bb_variable_store.py - Decision Variables and Domains for Branch & Bound
========================================================================
Flat, index-addressed storage for the assignment matrix, per-slot offer
type, occupancy and derived resource/price fields, with a change trail so
that backtracking only undoes what was touched since a snapshot.
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Sequence, Tuple
from enum import Enum

from models import ProblemInstance


Domain = FrozenSet[int]

BOOLEAN_DOMAIN: Domain = frozenset((0, 1))


class VariableKind(Enum):
    """Families of decision variables."""
    ASSIGNMENT = "assignment"  # component c deployed on slot s
    TYPE = "type"              # offer id of slot s, 0 when unused
    OCCUPANCY = "occupancy"    # slot s in use
    RESOURCE = "resource"      # capacity of slot s in dimension h
    PRICE = "price"            # price of slot s


@dataclass(frozen=True)
class VariableLayout:
    """
    Maps (component, slot), slot and (slot, dimension) coordinates onto flat
    variable indices. Blocks are laid out in the order of VariableKind.
    """
    component_count: int
    slot_count: int
    dimension_count: int
    offer_count: int
    
    @classmethod
    def for_instance(cls, instance: ProblemInstance) -> 'VariableLayout':
        return cls(instance.component_count, instance.slot_count,
                   instance.dimension_count, instance.offer_count)
    
    @property
    def _type_base(self) -> int:
        return self.component_count * self.slot_count
    
    @property
    def _occupancy_base(self) -> int:
        return self._type_base + self.slot_count
    
    @property
    def _resource_base(self) -> int:
        return self._occupancy_base + self.slot_count
    
    @property
    def _price_base(self) -> int:
        return self._resource_base + self.slot_count * self.dimension_count
    
    @property
    def size(self) -> int:
        return self._price_base + self.slot_count
    
    def assignment(self, component: int, slot: int) -> int:
        return component * self.slot_count + slot
    
    def slot_type(self, slot: int) -> int:
        return self._type_base + slot
    
    def occupancy(self, slot: int) -> int:
        return self._occupancy_base + slot
    
    def resource(self, slot: int, dimension: int) -> int:
        return self._resource_base + slot * self.dimension_count + dimension
    
    def price(self, slot: int) -> int:
        return self._price_base + slot
    
    def slot_assignments(self, slot: int) -> List[int]:
        """Assignment variables of every component on one slot."""
        return [self.assignment(c, slot) for c in range(self.component_count)]
    
    def component_assignments(self, component: int) -> List[int]:
        """Assignment variables of one component on every slot."""
        return [self.assignment(component, s) for s in range(self.slot_count)]
    
    def kind(self, variable: int) -> VariableKind:
        if variable < self._type_base:
            return VariableKind.ASSIGNMENT
        if variable < self._occupancy_base:
            return VariableKind.TYPE
        if variable < self._resource_base:
            return VariableKind.OCCUPANCY
        if variable < self._price_base:
            return VariableKind.RESOURCE
        return VariableKind.PRICE
    
    def describe(self, variable: int) -> str:
        """Readable name of a variable, for logs and error messages."""
        kind = self.kind(variable)
        if kind is VariableKind.ASSIGNMENT:
            component, slot = divmod(variable, self.slot_count)
            return f"assign[c={component},s={slot}]"
        if kind is VariableKind.TYPE:
            return f"type[s={variable - self._type_base}]"
        if kind is VariableKind.OCCUPANCY:
            return f"occupancy[s={variable - self._occupancy_base}]"
        if kind is VariableKind.RESOURCE:
            slot, dimension = divmod(variable - self._resource_base, self.dimension_count)
            return f"resource[s={slot},h={dimension}]"
        return f"price[s={variable - self._price_base}]"


class VariableStore:
    """
    Current domains of all decision variables for one solve attempt.
    
    Narrowing operations never raise on contradiction: they return False and
    leave the domain untouched, and the caller unwinds with `restore`.
    Every successful narrowing is written to a trail, so `restore` costs
    O(variables touched since the snapshot).
    """
    
    def __init__(self, layout: VariableLayout, domains: Sequence[Domain]):
        if len(domains) != layout.size:
            raise ValueError(f"Expected {layout.size} domains, got {len(domains)}")
        self.layout = layout
        self._domains: List[Domain] = list(domains)
        self._trail: List[Tuple[int, Domain]] = []
        self._modified: List[int] = []
    
    @classmethod
    def create_from_instance(cls, instance: ProblemInstance) -> 'VariableStore':
        """Initial domains: booleans, offer ids, and the offer-derived field values."""
        layout = VariableLayout.for_instance(instance)
        capacities = instance.capacity_matrix
        prices = instance.price_vector
        
        domains: List[Domain] = [BOOLEAN_DOMAIN] * (layout.component_count * layout.slot_count)
        domains.extend([frozenset(range(layout.offer_count + 1))] * layout.slot_count)
        domains.extend([BOOLEAN_DOMAIN] * layout.slot_count)
        
        resource_domains = [
            frozenset({0} | {int(v) for v in capacities[:, h]})
            for h in range(layout.dimension_count)
        ]
        for _ in range(layout.slot_count):
            domains.extend(resource_domains)
        
        price_domain = frozenset({0} | {int(p) for p in prices})
        domains.extend([price_domain] * layout.slot_count)
        
        return cls(layout, domains)
    
    @classmethod
    def from_values(cls, layout: VariableLayout, values: Sequence[int]) -> 'VariableStore':
        """A fully determined store, e.g. for re-verifying a solution."""
        return cls(layout, [frozenset((int(v),)) for v in values])
    
    # ------------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------------
    
    def current_domain(self, variable: int) -> Domain:
        return self._domains[variable]
    
    def is_fixed(self, variable: int) -> bool:
        return len(self._domains[variable]) == 1
    
    def value(self, variable: int) -> int:
        """Value of a fixed variable."""
        domain = self._domains[variable]
        if len(domain) != 1:
            raise ValueError(f"{self.layout.describe(variable)} is not fixed: {sorted(domain)}")
        return next(iter(domain))
    
    def min_value(self, variable: int) -> int:
        return min(self._domains[variable])
    
    def max_value(self, variable: int) -> int:
        return max(self._domains[variable])
    
    def is_complete(self) -> bool:
        """True when every variable is singleton."""
        return all(len(domain) == 1 for domain in self._domains)
    
    def values(self) -> Tuple[int, ...]:
        """Values of a complete store."""
        return tuple(self.value(v) for v in range(self.layout.size))
    
    # ------------------------------------------------------------------------
    # Narrowing
    # ------------------------------------------------------------------------
    
    def assign(self, variable: int, value: int) -> bool:
        """Narrow to a single value; False if the value is not in the domain."""
        domain = self._domains[variable]
        if value not in domain:
            return False
        if len(domain) > 1:
            self._set(variable, frozenset((value,)))
        return True
    
    def remove_value(self, variable: int, value: int) -> bool:
        """Remove one value; False if that empties the domain."""
        domain = self._domains[variable]
        if value not in domain:
            return True
        if len(domain) == 1:
            return False
        self._set(variable, domain - {value})
        return True
    
    def restrict(self, variable: int, allowed: Iterable[int]) -> bool:
        """Intersect the domain with `allowed`; False if nothing remains."""
        domain = self._domains[variable]
        narrowed = domain.intersection(allowed)
        if not narrowed:
            return False
        if len(narrowed) < len(domain):
            self._set(variable, frozenset(narrowed))
        return True
    
    def restrict_bounds(self, variable: int, lower: int, upper: int) -> bool:
        """Keep only values within [lower, upper]."""
        domain = self._domains[variable]
        return self.restrict(variable, [v for v in domain if lower <= v <= upper])
    
    def _set(self, variable: int, domain: Domain):
        self._trail.append((variable, self._domains[variable]))
        self._domains[variable] = domain
        self._modified.append(variable)
    
    def drain_modified(self) -> List[int]:
        """Variables narrowed since the last drain."""
        modified, self._modified = self._modified, []
        return modified
    
    # ------------------------------------------------------------------------
    # Backtracking
    # ------------------------------------------------------------------------
    
    def snapshot(self) -> int:
        """Checkpoint token: the current trail height."""
        return len(self._trail)
    
    def restore(self, snapshot: int):
        """Undo every narrowing recorded after `snapshot`."""
        trail = self._trail
        domains = self._domains
        while len(trail) > snapshot:
            variable, previous = trail.pop()
            domains[variable] = previous
        self._modified = []
    
    def clone(self) -> 'VariableStore':
        """Private copy of the current domains with an empty trail."""
        return VariableStore(self.layout, self._domains)
    
    @property
    def trail_size(self) -> int:
        return len(self._trail)
    
    def __repr__(self) -> str:
        open_count = sum(1 for d in self._domains if len(d) > 1)
        return f"VariableStore(size={self.layout.size}, open={open_count}, trail={len(self._trail)})"
