#!/usr/bin/env python3
"""
Test Constraint Propagation and Bounding
========================================
Work-queue behaviour, fixpoint and contradiction handling of the
propagation engine, and the cost lower bounds.
"""

import pytest

from bb_variable_store import VariableStore
from bb_constraint_model import build_constraint_system
from bb_constraint_propagation import ConstraintPropagationEngine, PropagationQueue
from bb_bounding_functions import BoundingMethod, CostBoundCalculator
from topology import build_scenario_instance

BALANCER, WORKER, AGENT = 0, 1, 2


def _engine():
    instance = build_scenario_instance()
    store = VariableStore.create_from_instance(instance)
    system = build_constraint_system(instance, store.layout)
    return instance, store, system, ConstraintPropagationEngine(system, store)


def test_queue_deduplicates_pending_constraints():
    queue = PropagationQueue("fifo")
    for index in (3, 1, 3, 2, 1):
        queue.add(index)
    
    assert queue.size() == 3
    assert [queue.pop(), queue.pop(), queue.pop()] == [3, 1, 2]
    assert queue.pop() is None
    
    queue.add(3)
    assert queue.size() == 1


def test_queue_lifo_order():
    queue = PropagationQueue("lifo")
    for index in (0, 1, 2):
        queue.add(index)
    assert [queue.pop(), queue.pop(), queue.pop()] == [2, 1, 0]


def test_queue_rejects_unknown_strategy():
    with pytest.raises(ValueError):
        PropagationQueue("random")


def test_root_propagation_reaches_fixpoint():
    _, store, system, engine = _engine()
    engine.schedule_all()
    
    assert engine.propagate()
    assert not engine.queue.has_items()
    
    # No constraint can narrow anything further
    trail = store.trail_size
    for constraint in system.constraints:
        assert constraint.propagate(store)
    assert store.trail_size == trail


def test_propagation_detects_overloaded_slot():
    _, store, _, engine = _engine()
    layout = store.layout
    engine.schedule_all()
    assert engine.propagate()
    
    # A worker drags its agent along, which overflows the small offer
    mark = store.snapshot()
    store.assign(layout.slot_type(0), 2)
    store.assign(layout.assignment(WORKER, 0), 1)
    assert not engine.propagate()
    assert not engine.queue.has_items()
    assert engine.contradiction_count == 1
    
    store.restore(mark)
    store.assign(layout.slot_type(0), 1)
    store.assign(layout.assignment(WORKER, 0), 1)
    assert engine.propagate()
    assert store.value(layout.assignment(AGENT, 0)) == 1
    assert store.value(layout.assignment(BALANCER, 0)) == 0
    assert store.value(layout.price(0)) == 10


def test_all_slots_unused_is_contradiction():
    _, store, _, engine = _engine()
    layout = store.layout
    for slot in range(layout.slot_count):
        store.assign(layout.slot_type(slot), 0)
    engine.schedule_all()
    
    assert not engine.propagate()


def test_lower_bound_uses_cheapest_remaining_price():
    instance, store, _, _ = _engine()
    layout = store.layout
    calculator = CostBoundCalculator(instance, layout)
    
    assert calculator.lower_bound(store) == 0
    store.assign(layout.price(0), 5)
    store.remove_value(layout.price(1), 0)
    
    result = calculator.compute(store)
    assert result.committed_cost == 5
    assert result.estimated_cost == 5
    assert result.lower_bound == 10
    assert CostBoundCalculator(instance, layout, BoundingMethod.COMMITTED_ONLY).lower_bound(store) == 5
    
    assert calculator.is_prunable(store, 10)
    assert not calculator.is_prunable(store, 11)
    assert not calculator.is_prunable(store, None)


def test_solution_cost_of_complete_store():
    instance, store, _, _ = _engine()
    layout = store.layout
    values = [0] * layout.size
    values[layout.price(0)] = 5
    values[layout.price(1)] = 10
    complete = VariableStore.from_values(layout, values)
    
    assert CostBoundCalculator(instance, layout).solution_cost(complete) == 15
