#!/usr/bin/env python3
"""
bb_constraint_model.py - Constraint Model for Branch & Bound
===========================================================
The fixed catalogue of placement constraints (type and occupancy
consistency, capacity, offer linking, cardinality, conflict, ratio,
implication, co-location), each able to test satisfaction and prune
domains, plus the constraint system built from a problem instance.
"""

from typing import Dict, List, Optional, Sequence, Tuple
from enum import Enum
from abc import ABC, abstractmethod
from collections import defaultdict
import logging

from models import ProblemInstance, ComparisonOperator
from bb_variable_store import VariableLayout, VariableStore

logger = logging.getLogger(__name__)


class ConstraintCategory(Enum):
    """Categories of constraints in the model."""
    TYPE_CONSISTENCY = "type_consistency"
    OCCUPANCY_CONSISTENCY = "occupancy_consistency"
    CAPACITY = "capacity"
    LINKING = "linking"
    CARDINALITY = "cardinality"
    CONFLICT = "conflict"
    RATIO = "ratio"
    IMPLICATION = "implication"
    COLOCATION = "colocation"
    SYMMETRY = "symmetry"


class Satisfaction(Enum):
    """Ternary satisfaction state of a constraint under the current domains."""
    SATISFIED = "satisfied"
    VIOLATED = "violated"
    UNDETERMINED = "undetermined"


class Constraint(ABC):
    """
    Abstract base class for constraints.
    
    Constraints are stateless once built, so a single constraint system can
    be shared by several search workers, each with its own store.
    """
    
    category: ConstraintCategory
    
    def __init__(self, name: str, variables: Sequence[int]):
        self.name = name
        self.variables: Tuple[int, ...] = tuple(variables)
    
    @abstractmethod
    def is_satisfied(self, store: VariableStore) -> Satisfaction:
        """Satisfied, violated, or undetermined while domains are open."""
        pass
    
    def propagate(self, store: VariableStore) -> bool:
        """
        Narrow domains of the referenced variables.
        Returns False on contradiction. The default only checks.
        """
        return self.is_satisfied(store) is not Satisfaction.VIOLATED
    
    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name})"


# ============================================================================
# LINEAR SUMS OVER 0/1 VARIABLES
# ============================================================================

Term = Tuple[int, int]  # (coefficient, variable)


def _sum_bounds(store: VariableStore, terms: Sequence[Term]) -> Tuple[int, int]:
    """Smallest and largest achievable value of sum(coef * x)."""
    low = high = 0
    for coef, var in terms:
        domain = store.current_domain(var)
        a, b = coef * min(domain), coef * max(domain)
        low += min(a, b)
        high += max(a, b)
    return low, high


def _propagate_at_most(store: VariableStore, terms: Sequence[Term], bound: int) -> bool:
    """Enforce sum(coef * x) <= bound over 0/1 variables by bounds reasoning."""
    minimum = 0
    open_terms = []
    for coef, var in terms:
        domain = store.current_domain(var)
        if len(domain) == 1:
            minimum += coef * next(iter(domain))
        else:
            minimum += min(0, coef)
            open_terms.append((coef, var))
    
    if minimum > bound:
        return False
    
    for coef, var in open_terms:
        if minimum + abs(coef) > bound:
            # The value that would raise the minimum is ruled out
            if not store.assign(var, 0 if coef > 0 else 1):
                return False
    return True


def _negate(terms: Sequence[Term]) -> List[Term]:
    return [(-coef, var) for coef, var in terms]


class LinearBooleanConstraint(Constraint):
    """sum(coef * x) <op> bound over assignment bits."""
    
    def __init__(self, name: str, terms: Sequence[Term],
                 operator: ComparisonOperator, bound: int):
        super().__init__(name, [var for _, var in terms])
        self.terms: List[Term] = list(terms)
        self.operator = operator
        self.bound = bound
    
    def is_satisfied(self, store: VariableStore) -> Satisfaction:
        low, high = _sum_bounds(store, self.terms)
        op = self.operator
        if op is ComparisonOperator.AT_MOST:
            if low > self.bound:
                return Satisfaction.VIOLATED
            return Satisfaction.SATISFIED if high <= self.bound else Satisfaction.UNDETERMINED
        if op is ComparisonOperator.AT_LEAST:
            if high < self.bound:
                return Satisfaction.VIOLATED
            return Satisfaction.SATISFIED if low >= self.bound else Satisfaction.UNDETERMINED
        if low > self.bound or high < self.bound:
            return Satisfaction.VIOLATED
        return Satisfaction.SATISFIED if low == high == self.bound else Satisfaction.UNDETERMINED
    
    def propagate(self, store: VariableStore) -> bool:
        op = self.operator
        if op in (ComparisonOperator.AT_MOST, ComparisonOperator.EQUAL):
            if not _propagate_at_most(store, self.terms, self.bound):
                return False
        if op in (ComparisonOperator.AT_LEAST, ComparisonOperator.EQUAL):
            if not _propagate_at_most(store, _negate(self.terms), -self.bound):
                return False
        return True


def _deployment_terms(layout: VariableLayout, components: Sequence[int],
                      factor: int = 1) -> List[Term]:
    return [(factor, layout.assignment(c, s))
            for c in components for s in range(layout.slot_count)]


class CardinalityConstraint(LinearBooleanConstraint):
    """Combined deployment count of one or more components against a bound."""
    
    category = ConstraintCategory.CARDINALITY
    
    def __init__(self, layout: VariableLayout, components: Sequence[int],
                 operator: ComparisonOperator, bound: int, label: str = ""):
        label = label or "+".join(str(c) for c in components)
        super().__init__(f"cardinality[{label} {operator.value} {bound}]",
                         _deployment_terms(layout, components), operator, bound)
        self.components = tuple(components)


class RatioConstraint(LinearBooleanConstraint):
    """
    Require/provide law:
    consumer_ratio * count(consumer) <= provider_ratio * count(provider).
    """
    
    category = ConstraintCategory.RATIO
    
    def __init__(self, layout: VariableLayout, consumer: int, provider: int,
                 consumer_ratio: int, provider_ratio: int, label: str = ""):
        terms = (_deployment_terms(layout, [consumer], consumer_ratio)
                 + _deployment_terms(layout, [provider], -provider_ratio))
        label = label or f"{consumer}->{provider}"
        super().__init__(f"ratio[{label} {consumer_ratio}:{provider_ratio}]",
                         terms, ComparisonOperator.AT_MOST, 0)
        self.consumer = consumer
        self.provider = provider


# ============================================================================
# PER-SLOT STRUCTURAL CONSTRAINTS
# ============================================================================

class _SlotPresenceConstraint(Constraint):
    """
    Shared logic for "slot hosts something <=> flag": the flag variable is
    0 exactly when every assignment bit of the slot is 0.
    """
    
    def __init__(self, name: str, bits: Sequence[int], flag: int):
        super().__init__(name, list(bits) + [flag])
        self.bits = tuple(bits)
        self.flag = flag
    
    def _flag_state(self, store: VariableStore) -> Optional[bool]:
        """True if flag means hosted, False if unused, None if open."""
        domain = store.current_domain(self.flag)
        if 0 not in domain:
            return True
        if len(domain) == 1:
            return False
        return None
    
    def is_satisfied(self, store: VariableStore) -> Satisfaction:
        ones = zeros = 0
        for bit in self.bits:
            domain = store.current_domain(bit)
            if len(domain) == 1:
                if 1 in domain:
                    ones += 1
                else:
                    zeros += 1
        flag = self._flag_state(store)
        if ones and flag is False:
            return Satisfaction.VIOLATED
        if zeros == len(self.bits) and flag is True:
            return Satisfaction.VIOLATED
        if flag is None or (ones == 0 and zeros < len(self.bits)):
            return Satisfaction.UNDETERMINED
        return Satisfaction.SATISFIED
    
    def propagate(self, store: VariableStore) -> bool:
        flag = self._flag_state(store)
        if flag is False:
            for bit in self.bits:
                if not store.assign(bit, 0):
                    return False
            return True
        
        open_bits = []
        for bit in self.bits:
            domain = store.current_domain(bit)
            if len(domain) > 1:
                open_bits.append(bit)
            elif 1 in domain:
                # Something is hosted: the slot must be in use
                return store.remove_value(self.flag, 0)
        
        if not open_bits:
            return store.assign(self.flag, 0)
        if flag is True and len(open_bits) == 1:
            return store.assign(open_bits[0], 1)
        return True


class TypeConsistencyConstraint(_SlotPresenceConstraint):
    """Any assignment on a slot <=> the slot has an offer type (> 0)."""
    
    category = ConstraintCategory.TYPE_CONSISTENCY
    
    def __init__(self, layout: VariableLayout, slot: int):
        super().__init__(f"type_consistency[s={slot}]",
                         layout.slot_assignments(slot), layout.slot_type(slot))
        self.slot = slot


class OccupancyConsistencyConstraint(_SlotPresenceConstraint):
    """Any assignment on a slot <=> occupancy = 1."""
    
    category = ConstraintCategory.OCCUPANCY_CONSISTENCY
    
    def __init__(self, layout: VariableLayout, slot: int):
        super().__init__(f"occupancy_consistency[s={slot}]",
                         layout.slot_assignments(slot), layout.occupancy(slot))
        self.slot = slot


class LinkingConstraint(Constraint):
    """
    Ties a slot's type to its occupancy and derived fields: type o > 0 means
    occupancy 1 and resource/price fields equal offer o's; type 0 means
    occupancy 0 and all fields 0. Enforced as a table constraint.
    """
    
    category = ConstraintCategory.LINKING
    
    def __init__(self, layout: VariableLayout, slot: int,
                 capacities: Sequence[Sequence[int]], prices: Sequence[int]):
        variables = ([layout.slot_type(slot), layout.occupancy(slot)]
                     + [layout.resource(slot, h) for h in range(layout.dimension_count)]
                     + [layout.price(slot)])
        super().__init__(f"linking[s={slot}]", variables)
        self.slot = slot
        
        rows = [tuple([0, 0] + [0] * layout.dimension_count + [0])]
        for offer_idx in range(layout.offer_count):
            rows.append(tuple(
                [offer_idx + 1, 1]
                + [int(v) for v in capacities[offer_idx]]
                + [int(prices[offer_idx])]
            ))
        self.table: Tuple[Tuple[int, ...], ...] = tuple(rows)
    
    def _supported_rows(self, store: VariableStore) -> List[Tuple[int, ...]]:
        domains = [store.current_domain(v) for v in self.variables]
        return [row for row in self.table
                if all(value in domain for value, domain in zip(row, domains))]
    
    def is_satisfied(self, store: VariableStore) -> Satisfaction:
        supported = self._supported_rows(store)
        if not supported:
            return Satisfaction.VIOLATED
        if all(store.is_fixed(v) for v in self.variables):
            return Satisfaction.SATISFIED
        return Satisfaction.UNDETERMINED
    
    def propagate(self, store: VariableStore) -> bool:
        supported = self._supported_rows(store)
        if not supported:
            return False
        for position, var in enumerate(self.variables):
            if not store.restrict(var, {row[position] for row in supported}):
                return False
        return True


class CapacityConstraint(Constraint):
    """
    Summed requirement of the components assigned to a slot in one dimension
    stays within the slot's capacity field for that dimension. The slot type
    is referenced so the constraint is revisited whenever the type narrows.
    """
    
    category = ConstraintCategory.CAPACITY
    
    def __init__(self, layout: VariableLayout, slot: int, dimension: int,
                 requirements: Sequence[int], dimension_name: str = ""):
        bits = layout.slot_assignments(slot)
        self.capacity_var = layout.resource(slot, dimension)
        super().__init__(
            f"capacity[s={slot},{dimension_name or dimension}]",
            bits + [self.capacity_var, layout.slot_type(slot)]
        )
        self.slot = slot
        self.dimension = dimension
        self.weighted_bits: Tuple[Tuple[int, int], ...] = tuple(
            (int(requirements[c]), bit) for c, bit in enumerate(bits)
        )
    
    def _load_bounds(self, store: VariableStore) -> Tuple[int, int]:
        low = high = 0
        for weight, bit in self.weighted_bits:
            domain = store.current_domain(bit)
            if 1 in domain:
                high += weight
                if 0 not in domain:
                    low += weight
        return low, high
    
    def is_satisfied(self, store: VariableStore) -> Satisfaction:
        low, high = self._load_bounds(store)
        capacity = store.current_domain(self.capacity_var)
        if low > max(capacity):
            return Satisfaction.VIOLATED
        if high <= min(capacity):
            return Satisfaction.SATISFIED
        return Satisfaction.UNDETERMINED
    
    def propagate(self, store: VariableStore) -> bool:
        load, _ = self._load_bounds(store)
        
        # Capacities below the committed load are impossible
        if not store.restrict_bounds(self.capacity_var, load, max(store.current_domain(self.capacity_var))):
            return False
        capacity = store.max_value(self.capacity_var)
        
        for weight, bit in self.weighted_bits:
            if weight and load + weight > capacity and store.current_domain(bit) == {0, 1}:
                if not store.assign(bit, 0):
                    return False
        return True


class ConflictConstraint(Constraint):
    """`component` shares no slot with any component in `others` (pairwise)."""
    
    category = ConstraintCategory.CONFLICT
    
    def __init__(self, layout: VariableLayout, component: int,
                 others: Sequence[int], slot: int, label: str = ""):
        self.anchor = layout.assignment(component, slot)
        self.others = tuple(layout.assignment(o, slot) for o in others)
        super().__init__(f"conflict[{label or component},s={slot}]",
                         [self.anchor] + list(self.others))
        self.slot = slot
    
    def is_satisfied(self, store: VariableStore) -> Satisfaction:
        anchor = store.current_domain(self.anchor)
        if 1 not in anchor:
            return Satisfaction.SATISFIED
        others = [store.current_domain(o) for o in self.others]
        if 0 not in anchor and any(0 not in d for d in others):
            return Satisfaction.VIOLATED
        if all(1 not in d for d in others):
            return Satisfaction.SATISFIED
        return Satisfaction.UNDETERMINED
    
    def propagate(self, store: VariableStore) -> bool:
        anchor = store.current_domain(self.anchor)
        if 0 not in anchor:
            for other in self.others:
                if not store.assign(other, 0):
                    return False
            return True
        if 1 in anchor and any(0 not in store.current_domain(o) for o in self.others):
            return store.assign(self.anchor, 0)
        return True


class ImplicationConstraint(Constraint):
    """count(antecedent) >= 1  =>  count(consequent) >= 1."""
    
    category = ConstraintCategory.IMPLICATION
    
    def __init__(self, layout: VariableLayout, antecedent: int, consequent: int, label: str = ""):
        self.antecedent_bits = tuple(layout.component_assignments(antecedent))
        self.consequent_bits = tuple(layout.component_assignments(consequent))
        super().__init__(f"implication[{label or f'{antecedent}=>{consequent}'}]",
                         self.antecedent_bits + self.consequent_bits)
    
    def is_satisfied(self, store: VariableStore) -> Satisfaction:
        antecedent_on = any(0 not in store.current_domain(b) for b in self.antecedent_bits)
        antecedent_off = all(1 not in store.current_domain(b) for b in self.antecedent_bits)
        consequent_on = any(0 not in store.current_domain(b) for b in self.consequent_bits)
        consequent_off = all(1 not in store.current_domain(b) for b in self.consequent_bits)
        if antecedent_on and consequent_off:
            return Satisfaction.VIOLATED
        if antecedent_off or consequent_on:
            return Satisfaction.SATISFIED
        return Satisfaction.UNDETERMINED
    
    def propagate(self, store: VariableStore) -> bool:
        if all(1 not in store.current_domain(b) for b in self.consequent_bits):
            for bit in self.antecedent_bits:
                if not store.assign(bit, 0):
                    return False
            return True
        if any(0 not in store.current_domain(b) for b in self.antecedent_bits):
            return _propagate_at_most(store, [(-1, b) for b in self.consequent_bits], -1)
        return True


class ColocationConstraint(Constraint):
    """
    On a slot hosting any primary, presence(dependent) equals the summed
    presence of the primaries. Slots hosting no primary are unconstrained.
    """
    
    category = ConstraintCategory.COLOCATION
    
    def __init__(self, layout: VariableLayout, dependent: int,
                 primaries: Sequence[int], slot: int, label: str = ""):
        self.dependent = layout.assignment(dependent, slot)
        self.primaries = tuple(layout.assignment(p, slot) for p in primaries)
        super().__init__(f"colocation[{label or dependent},s={slot}]",
                         [self.dependent] + list(self.primaries))
        self.slot = slot
    
    def is_satisfied(self, store: VariableStore) -> Satisfaction:
        hosted = sum(1 for p in self.primaries if 0 not in store.current_domain(p))
        dependent = store.current_domain(self.dependent)
        if hosted > 1 or (hosted == 1 and 1 not in dependent):
            return Satisfaction.VIOLATED
        if all(1 not in store.current_domain(p) for p in self.primaries):
            return Satisfaction.SATISFIED
        if hosted == 1 and 0 not in dependent and all(
                store.is_fixed(p) for p in self.primaries):
            return Satisfaction.SATISFIED
        return Satisfaction.UNDETERMINED
    
    def propagate(self, store: VariableStore) -> bool:
        if 1 not in store.current_domain(self.dependent):
            for primary in self.primaries:
                if not store.assign(primary, 0):
                    return False
            return True
        
        hosted = [p for p in self.primaries if 0 not in store.current_domain(p)]
        if not hosted:
            return True
        # A hosted primary forces the dependent, and the dependent is 0/1
        if len(hosted) > 1 or not store.assign(self.dependent, 1):
            return False
        for primary in self.primaries:
            if primary != hosted[0] and not store.assign(primary, 0):
                return False
        return True


# ============================================================================
# CONSTRAINT SYSTEM
# ============================================================================

class ConstraintSystem:
    """
    Holds all constraints of a model together with the variable -> constraint
    watch lists used by the propagation engine.
    """
    
    def __init__(self, layout: VariableLayout):
        self.layout = layout
        self.constraints: List[Constraint] = []
        self.watchers: Dict[int, List[int]] = defaultdict(list)
    
    def add(self, constraint: Constraint) -> int:
        index = len(self.constraints)
        self.constraints.append(constraint)
        for var in set(constraint.variables):
            self.watchers[var].append(index)
        return index
    
    def __len__(self) -> int:
        return len(self.constraints)
    
    def check(self, store: VariableStore) -> List[Tuple[Constraint, Satisfaction]]:
        """Satisfaction state of every constraint."""
        return [(c, c.is_satisfied(store)) for c in self.constraints]
    
    def unsatisfied(self, store: VariableStore) -> List[Constraint]:
        """Constraints that are not (yet) satisfied."""
        return [c for c, state in self.check(store) if state is not Satisfaction.SATISFIED]
    
    def count_by_category(self) -> Dict[str, int]:
        counts: Dict[str, int] = defaultdict(int)
        for constraint in self.constraints:
            counts[constraint.category.value] += 1
        return dict(counts)


def build_constraint_system(instance: ProblemInstance,
                            layout: Optional[VariableLayout] = None) -> ConstraintSystem:
    """Build the full placement constraint catalogue for an instance."""
    layout = layout or VariableLayout.for_instance(instance)
    system = ConstraintSystem(layout)
    
    requirements = instance.requirement_matrix
    capacities = instance.capacity_matrix
    prices = instance.price_vector
    index = instance.component_index
    
    for slot in range(layout.slot_count):
        system.add(TypeConsistencyConstraint(layout, slot))
        system.add(OccupancyConsistencyConstraint(layout, slot))
        system.add(LinkingConstraint(layout, slot, capacities, prices))
        for h, dimension in enumerate(instance.dimensions):
            system.add(CapacityConstraint(layout, slot, h, requirements[:, h], dimension))
    
    rules = instance.rules
    for rule in rules.cardinalities:
        system.add(CardinalityConstraint(
            layout, [index(n) for n in rule.components], rule.operator, rule.bound,
            label="+".join(rule.components)))
    
    for rule in rules.conflicts:
        others = [index(n) for n in rule.conflicts_with]
        for slot in range(layout.slot_count):
            system.add(ConflictConstraint(layout, index(rule.component), others, slot,
                                          label=rule.component))
    
    for rule in rules.ratios:
        system.add(RatioConstraint(layout, index(rule.consumer), index(rule.provider),
                                   rule.consumer_ratio, rule.provider_ratio,
                                   label=f"{rule.consumer}->{rule.provider}"))
    
    for rule in rules.implications:
        system.add(ImplicationConstraint(layout, index(rule.antecedent), index(rule.consequent),
                                         label=f"{rule.antecedent}=>{rule.consequent}"))
    
    for rule in rules.colocations:
        primaries = [index(n) for n in rule.primaries]
        for slot in range(layout.slot_count):
            system.add(ColocationConstraint(layout, index(rule.dependent), primaries, slot,
                                            label=rule.dependent))
    
    logger.debug(f"Built {len(system)} constraints: {system.count_by_category()}")
    return system
