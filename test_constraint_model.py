#!/usr/bin/env python3
"""
Test Constraint Model
=====================
Satisfaction checks and domain pruning of each constraint kind.
"""

from models import ComparisonOperator
from bb_variable_store import VariableLayout, VariableStore
from bb_constraint_model import (
    CapacityConstraint, CardinalityConstraint, ColocationConstraint, ConflictConstraint,
    ImplicationConstraint, LinkingConstraint, RatioConstraint, Satisfaction,
    TypeConsistencyConstraint, build_constraint_system
)
from bb_symmetry_breaking import SlotOrderingConstraint, add_symmetry_breaking
from topology import build_scenario_instance, build_secure_web_instance

BALANCER, WORKER, AGENT = 0, 1, 2


def _scenario_store():
    instance = build_scenario_instance()
    store = VariableStore.create_from_instance(instance)
    return instance, store.layout, store


def test_cardinality_equal_forces_remaining_bits():
    _, layout, store = _scenario_store()
    constraint = CardinalityConstraint(layout, [BALANCER], ComparisonOperator.EQUAL, 1)
    
    assert constraint.is_satisfied(store) is Satisfaction.UNDETERMINED
    store.assign(layout.assignment(BALANCER, 1), 1)
    assert constraint.propagate(store)
    assert store.value(layout.assignment(BALANCER, 0)) == 0
    assert store.value(layout.assignment(BALANCER, 2)) == 0
    assert constraint.is_satisfied(store) is Satisfaction.SATISFIED


def test_cardinality_at_least_detects_shortfall():
    _, layout, store = _scenario_store()
    constraint = CardinalityConstraint(layout, [WORKER], ComparisonOperator.AT_LEAST, 2)
    
    store.assign(layout.assignment(WORKER, 0), 0)
    assert constraint.propagate(store)
    assert store.value(layout.assignment(WORKER, 1)) == 1
    assert store.value(layout.assignment(WORKER, 2)) == 1
    
    store.restore(0)
    store.assign(layout.assignment(WORKER, 0), 0)
    store.assign(layout.assignment(WORKER, 1), 0)
    assert constraint.is_satisfied(store) is Satisfaction.VIOLATED
    assert not constraint.propagate(store)


def test_ratio_requires_providers():
    _, layout, store = _scenario_store()
    # two agents need at least two workers at ratio 1:1
    constraint = RatioConstraint(layout, consumer=AGENT, provider=WORKER,
                                 consumer_ratio=1, provider_ratio=1)
    store.assign(layout.assignment(AGENT, 0), 1)
    store.assign(layout.assignment(AGENT, 1), 1)
    store.assign(layout.assignment(WORKER, 2), 0)
    
    assert constraint.propagate(store)
    assert store.value(layout.assignment(WORKER, 0)) == 1
    assert store.value(layout.assignment(WORKER, 1)) == 1


def test_type_consistency_links_bits_and_type():
    _, layout, store = _scenario_store()
    constraint = TypeConsistencyConstraint(layout, 0)
    
    store.assign(layout.assignment(AGENT, 0), 1)
    assert constraint.propagate(store)
    assert 0 not in store.current_domain(layout.slot_type(0))
    
    store.restore(0)
    store.assign(layout.slot_type(1), 0)
    other = TypeConsistencyConstraint(layout, 1)
    assert other.propagate(store)
    assert all(store.value(bit) == 0 for bit in layout.slot_assignments(1))
    assert other.is_satisfied(store) is Satisfaction.SATISFIED


def test_linking_fixes_fields_from_type():
    instance, layout, store = _scenario_store()
    constraint = LinkingConstraint(layout, 0, instance.capacity_matrix, instance.price_vector)
    
    store.assign(layout.slot_type(0), 2)
    assert constraint.propagate(store)
    assert store.value(layout.occupancy(0)) == 1
    assert [store.value(layout.resource(0, h)) for h in range(3)] == [2, 4, 1]
    assert store.value(layout.price(0)) == 5
    assert constraint.is_satisfied(store) is Satisfaction.SATISFIED


def test_linking_narrows_type_from_price():
    instance, layout, store = _scenario_store()
    constraint = LinkingConstraint(layout, 0, instance.capacity_matrix, instance.price_vector)
    
    store.remove_value(layout.price(0), 0)
    store.remove_value(layout.price(0), 5)
    assert constraint.propagate(store)
    assert store.value(layout.slot_type(0)) == 1
    assert store.value(layout.resource(0, 1)) == 8


def test_capacity_prunes_overflowing_bits():
    instance, layout, store = _scenario_store()
    memory = instance.requirement_matrix[:, 1]
    constraint = CapacityConstraint(layout, 0, 1, memory, "memory")
    
    # small offer: 4 memory, the worker alone fills it
    store.assign(layout.resource(0, 1), 4)
    store.assign(layout.assignment(WORKER, 0), 1)
    assert constraint.propagate(store)
    assert store.value(layout.assignment(AGENT, 0)) == 0
    assert store.value(layout.assignment(BALANCER, 0)) == 0


def test_capacity_raises_capacity_to_committed_load():
    instance, layout, store = _scenario_store()
    memory = instance.requirement_matrix[:, 1]
    constraint = CapacityConstraint(layout, 0, 1, memory, "memory")
    
    store.assign(layout.assignment(WORKER, 0), 1)
    store.assign(layout.assignment(AGENT, 0), 1)
    assert constraint.propagate(store)
    assert store.current_domain(layout.resource(0, 1)) == frozenset({8})


def test_conflict_excludes_others_once_anchor_hosted():
    _, layout, store = _scenario_store()
    constraint = ConflictConstraint(layout, BALANCER, [WORKER], 0)
    
    store.assign(layout.assignment(BALANCER, 0), 1)
    assert constraint.propagate(store)
    assert store.value(layout.assignment(WORKER, 0)) == 0
    assert constraint.is_satisfied(store) is Satisfaction.SATISFIED
    
    store.restore(0)
    store.assign(layout.assignment(WORKER, 0), 1)
    assert constraint.propagate(store)
    assert store.value(layout.assignment(BALANCER, 0)) == 0


def test_implication_requires_consequent():
    _, layout, store = _scenario_store()
    constraint = ImplicationConstraint(layout, AGENT, WORKER)
    
    store.assign(layout.assignment(AGENT, 1), 1)
    store.assign(layout.assignment(WORKER, 0), 0)
    store.assign(layout.assignment(WORKER, 1), 0)
    assert constraint.propagate(store)
    assert store.value(layout.assignment(WORKER, 2)) == 1
    
    store.restore(0)
    for bit in layout.component_assignments(WORKER):
        store.assign(bit, 0)
    assert constraint.propagate(store)
    assert all(store.value(b) == 0 for b in layout.component_assignments(AGENT))


def test_colocation_is_conditional_on_primaries():
    _, layout, store = _scenario_store()
    constraint = ColocationConstraint(layout, AGENT, [WORKER], 0)
    
    # agent alone on a slot without a worker is allowed
    store.assign(layout.assignment(AGENT, 0), 1)
    store.assign(layout.assignment(WORKER, 0), 0)
    assert constraint.is_satisfied(store) is Satisfaction.SATISFIED
    
    store.restore(0)
    store.assign(layout.assignment(WORKER, 0), 1)
    assert constraint.propagate(store)
    assert store.value(layout.assignment(AGENT, 0)) == 1
    
    store.restore(0)
    store.assign(layout.assignment(AGENT, 0), 0)
    assert constraint.propagate(store)
    assert store.value(layout.assignment(WORKER, 0)) == 0


def test_colocation_rejects_two_primaries():
    instance = build_secure_web_instance(slot_count=2)
    store = VariableStore.create_from_instance(instance)
    layout = store.layout
    index = instance.component_index
    constraint = ColocationConstraint(layout, index("agent"),
                                      [index("worker_a"), index("worker_b")], 0)
    
    store.assign(layout.assignment(index("worker_a"), 0), 1)
    store.assign(layout.assignment(index("worker_b"), 0), 1)
    assert constraint.is_satisfied(store) is Satisfaction.VIOLATED
    assert not constraint.propagate(store)


def test_slot_ordering_bounds():
    _, layout, store = _scenario_store()
    constraint = SlotOrderingConstraint(layout, 0)
    
    store.assign(layout.slot_type(0), 1)
    assert constraint.propagate(store)
    assert store.current_domain(layout.slot_type(1)) == frozenset({0, 1})
    
    store.restore(0)
    store.assign(layout.slot_type(1), 2)
    assert constraint.propagate(store)
    assert store.value(layout.slot_type(0)) == 2


def test_build_constraint_system_catalogue():
    instance = build_scenario_instance()
    layout = VariableLayout.for_instance(instance)
    system = build_constraint_system(instance, layout)
    counts = system.count_by_category()
    
    assert counts['type_consistency'] == 3
    assert counts['linking'] == 3
    assert counts['capacity'] == 9
    assert counts['cardinality'] == 2
    assert counts['conflict'] == 3
    assert counts['colocation'] == 3
    assert 'symmetry' not in counts
    
    assert add_symmetry_breaking(system) == 2
    assert system.count_by_category()['symmetry'] == 2
    # every constraint is watched by each of its variables
    for index, constraint in enumerate(system.constraints):
        for var in constraint.variables:
            assert index in system.watchers[var]
