#!/usr/bin/env python3
"""
Test Exhaustive Search
======================
Small random instances, solved by branch & bound and by enumerating every
0/1 assignment. Each used slot of the enumeration takes the cheapest offer
that fits its load, so both sides must agree on the optimal cost and on
infeasibility.
"""

import itertools

import numpy as np
import pytest

from models import (
    CardinalityRule, ColocationRule, ComparisonOperator, Component, ConflictRule,
    ImplicationRule, PlacementRules, ProblemInstance, RatioRule, SolveStatus, VMOffer
)
from placement_solver import PlacementSolver, SolverSettings
from solution_validation import verify_solution

SETTINGS = {
    'symmetry': SolverSettings(time_limit=None, symmetry_breaking=True),
    'no_symmetry': SolverSettings(time_limit=None, symmetry_breaking=False),
    'parallel': SolverSettings(time_limit=None, parallel=True, max_workers=3, split_depth=2),
}


def _others(rng, count, exclude):
    """A non-empty random subset of component indices without `exclude`."""
    pool = [i for i in range(count) if i != exclude]
    size = int(rng.integers(1, len(pool) + 1))
    return sorted(int(i) for i in rng.choice(pool, size=size, replace=False))


def random_instance(seed):
    rng = np.random.default_rng(seed)
    n_components = int(rng.integers(2, 4))
    n_slots = int(rng.integers(1, 4))
    names = [f"c{i}" for i in range(n_components)]

    offers = [VMOffer(f"o{k}",
                      tuple(int(v) for v in rng.integers(1, 7, size=2)),
                      int(rng.integers(1, 10)))
              for k in range(int(rng.integers(2, 4)))]

    components = []
    for name in names:
        requirements = rng.integers(0, 5, size=2)
        if not any(all(requirements <= offer.capacities) for offer in offers):
            host = offers[int(rng.integers(len(offers)))]
            requirements = np.minimum(requirements, host.capacities)
        components.append(Component(name, tuple(int(v) for v in requirements)))

    operators = list(ComparisonOperator)
    cardinalities, conflicts, ratios, implications, colocations = [], [], [], [], []
    if rng.random() < 0.8:
        members = _others(rng, n_components, exclude=-1)
        cardinalities.append(CardinalityRule(
            tuple(names[i] for i in members),
            operators[int(rng.integers(len(operators)))],
            int(rng.integers(0, n_slots + 1))))
    if rng.random() < 0.7:
        anchor = int(rng.integers(n_components))
        conflicts.append(ConflictRule(
            names[anchor], tuple(names[i] for i in _others(rng, n_components, anchor))))
    if rng.random() < 0.7:
        consumer, provider = (int(i) for i in rng.choice(n_components, size=2, replace=False))
        ratios.append(RatioRule(names[consumer], names[provider],
                                int(rng.integers(1, 4)), int(rng.integers(1, 4))))
    if rng.random() < 0.7:
        antecedent, consequent = (int(i) for i in rng.choice(n_components, size=2, replace=False))
        implications.append(ImplicationRule(names[antecedent], names[consequent]))
    if rng.random() < 0.7:
        dependent = int(rng.integers(n_components))
        colocations.append(ColocationRule(
            names[dependent], tuple(names[i] for i in _others(rng, n_components, dependent))))

    return ProblemInstance(
        components=components,
        offers=offers,
        slot_count=n_slots,
        rules=PlacementRules(tuple(cardinalities), tuple(conflicts), tuple(ratios),
                             tuple(implications), tuple(colocations)),
        dimensions=("cpu", "memory"),
        name=f"random-{seed}"
    )


def _rules_hold(instance, assignment):
    index = {name: i for i, name in enumerate(instance.component_names)}
    counts = assignment.sum(axis=1)
    rules = instance.rules

    for rule in rules.cardinalities:
        total = sum(int(counts[index[name]]) for name in rule.components)
        if not rule.operator.holds(total, rule.bound):
            return False
    for rule in rules.conflicts:
        anchor = assignment[index[rule.component]]
        for other in rule.conflicts_with:
            if np.any(anchor & assignment[index[other]]):
                return False
    for rule in rules.ratios:
        if (rule.consumer_ratio * counts[index[rule.consumer]]
                > rule.provider_ratio * counts[index[rule.provider]]):
            return False
    for rule in rules.implications:
        if counts[index[rule.antecedent]] >= 1 and counts[index[rule.consequent]] == 0:
            return False
    for rule in rules.colocations:
        dependent = assignment[index[rule.dependent]]
        primaries = sum(assignment[index[name]] for name in rule.primaries)
        for slot in range(instance.slot_count):
            if primaries[slot] and (primaries[slot] != 1 or not dependent[slot]):
                return False
    return True


def brute_force_cost(instance):
    """Cheapest valid placement cost, or None when no placement exists."""
    requirements = instance.requirement_matrix
    capacities = instance.capacity_matrix
    prices = np.array([offer.price for offer in instance.offers])
    n, v = len(instance.components), instance.slot_count

    best = None
    for bits in itertools.product((0, 1), repeat=n * v):
        assignment = np.array(bits, dtype=int).reshape(n, v)
        if not _rules_hold(instance, assignment):
            continue

        cost = 0
        for slot in range(v):
            hosted = assignment[:, slot].astype(bool)
            if not hosted.any():
                continue
            load = requirements[hosted].sum(axis=0)
            fitting = np.all(capacities >= load, axis=1)
            if not fitting.any():
                cost = None
                break
            cost += int(prices[fitting].min())

        if cost is not None and (best is None or cost < best):
            best = cost
    return best


@pytest.mark.parametrize("mode", sorted(SETTINGS))
@pytest.mark.parametrize("seed", range(50))
def test_search_matches_enumeration(seed, mode):
    instance = random_instance(seed)
    expected = brute_force_cost(instance)

    result = PlacementSolver(SETTINGS[mode]).solve(instance)

    if expected is None:
        assert result.status is SolveStatus.INFEASIBLE
        assert result.solution is None
    else:
        assert result.status is SolveStatus.OPTIMAL
        assert result.total_cost == expected
        assert verify_solution(instance, result.solution).is_valid


def test_random_instances_cover_every_rule_kind():
    instances = [random_instance(seed) for seed in range(50)]

    for kind in ('cardinalities', 'conflicts', 'ratios', 'implications', 'colocations'):
        assert any(getattr(inst.rules, kind) for inst in instances)
    outcomes = [brute_force_cost(inst) is None for inst in instances]
    assert any(outcomes) and not all(outcomes)
