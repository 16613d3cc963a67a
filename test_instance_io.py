#!/usr/bin/env python3
"""
Test Instance I/O and Validation
================================
Instance serialization through JSON and YAML files, structural validation
and the unplaceable-component check.
"""

import pytest
import yaml

from models import (
    CardinalityRule, ComparisonOperator, Component, ConflictRule, InvalidInstanceError,
    PlacementRules, ProblemInstance, VMOffer
)
from instance_validation import check_structure, find_unplaceable_components, validate_instance
from topology import build_scenario_instance, build_secure_web_instance
from utils import load_instance, save_json


def test_instance_round_trip_through_dict():
    instance = build_secure_web_instance()
    restored = ProblemInstance.from_dict(instance.to_dict())
    
    assert restored == instance
    assert restored.rules.ratios[0].provider_ratio == 10


def test_load_instance_from_json(tmp_path):
    instance = build_scenario_instance()
    path = tmp_path / "scenario.json"
    save_json(instance.to_dict(), path)
    
    assert load_instance(path) == instance


def test_load_instance_from_yaml(tmp_path):
    path = tmp_path / "tiny.yaml"
    path.write_text(yaml.safe_dump({
        'name': 'tiny',
        'slots': 2,
        'dimensions': ['cpu', 'memory'],
        'components': [{'name': 'web', 'requirements': [1, 2]}],
        'offers': [{'name': 'vm', 'capacities': [2, 4], 'price': 3}],
        'rules': {'cardinalities': [{'components': ['web'], 'operator': '>=', 'bound': 2}]},
    }))
    instance = load_instance(path)
    
    assert instance.name == 'tiny'
    assert instance.dimensions == ('cpu', 'memory')
    assert instance.rules.cardinalities[0].operator is ComparisonOperator.AT_LEAST
    assert instance.requirement_matrix.tolist() == [[1, 2]]


def test_load_instance_rejects_unknown_suffix(tmp_path):
    path = tmp_path / "instance.txt"
    path.write_text("{}")
    with pytest.raises(ValueError):
        load_instance(path)


def test_from_dict_missing_field():
    with pytest.raises(InvalidInstanceError):
        ProblemInstance.from_dict({'components': [], 'offers': []})


def test_operator_parsing():
    assert ComparisonOperator.parse('=') is ComparisonOperator.EQUAL
    assert ComparisonOperator.parse('upper') is ComparisonOperator.AT_MOST
    with pytest.raises(InvalidInstanceError):
        ComparisonOperator.parse('!=')


def _tiny(**changes):
    data = dict(
        components=[Component('a', (1, 1)), Component('b', (2, 2))],
        offers=[VMOffer('vm', (2, 2), 4)],
        slot_count=2,
        dimensions=('cpu', 'memory'),
    )
    data.update(changes)
    return ProblemInstance(**data)


def test_check_structure_accepts_valid_instance():
    check_structure(_tiny())
    check_structure(build_secure_web_instance())


@pytest.mark.parametrize("changes", [
    {'slot_count': 0},
    {'offers': []},
    {'components': [Component('a', (1, 1)), Component('a', (1, 1))]},
    {'components': [Component('a', (1,))]},
    {'components': [Component('a', (-1, 1))]},
    {'rules': PlacementRules(conflicts=(ConflictRule('a', ('ghost',)),))},
    {'rules': PlacementRules(conflicts=(ConflictRule('a', ('a',)),))},
    {'rules': PlacementRules(cardinalities=(
        CardinalityRule(('a',), ComparisonOperator.AT_LEAST, -1),))},
])
def test_check_structure_rejects_malformed_instances(changes):
    with pytest.raises(InvalidInstanceError):
        check_structure(_tiny(**changes))


def test_unplaceable_component_per_dimension():
    instance = _tiny(components=[Component('a', (1, 1)), Component('big', (3, 5))])
    issues = find_unplaceable_components(instance)
    
    assert [(i.component, i.dimension) for i in issues] == [('big', 'cpu'), ('big', 'memory')]
    assert 'largest offer provides 2' in issues[0].description


def test_component_fitting_no_single_offer():
    instance = _tiny(
        components=[Component('odd', (3, 3))],
        offers=[VMOffer('wide', (4, 1), 2), VMOffer('tall', (1, 4), 2)],
    )
    issues = find_unplaceable_components(instance)
    
    assert len(issues) == 1
    assert issues[0].dimension is None


def test_strict_validation_raises_with_issues():
    instance = _tiny(components=[Component('big', (3, 1))])
    
    assert len(validate_instance(instance)) == 1
    with pytest.raises(InvalidInstanceError) as excinfo:
        validate_instance(instance, strict=True)
    assert excinfo.value.issues[0].component == 'big'
