#!/usr/bin/env python3
"""
instance_validation.py - Problem Instance Validation
====================================================
Structural checks on problem instances and detection of components that
no VM offer can host, run before any search starts.
"""

from typing import List
import logging
import numpy as np

from models import (
    ProblemInstance, InstanceIssue, InvalidInstanceError, ComparisonOperator
)

logger = logging.getLogger(__name__)


def check_structure(instance: ProblemInstance) -> None:
    """
    Reject malformed instances.
    Raises InvalidInstanceError naming the first problem found.
    """
    if instance.slot_count < 1:
        raise InvalidInstanceError(f"Slot pool must hold at least one slot, got {instance.slot_count}")
    if not instance.components:
        raise InvalidInstanceError("Instance has no components")
    if not instance.offers:
        raise InvalidInstanceError("Instance has no VM offers")
    if instance.dimension_count < 1:
        raise InvalidInstanceError("Instance has no requirement dimensions")
    
    names = instance.component_names
    if len(set(names)) != len(names):
        raise InvalidInstanceError(f"Duplicate component names: {names}")
    
    for component in instance.components:
        if len(component.requirements) != instance.dimension_count:
            raise InvalidInstanceError(
                f"Component {component.name!r} has {len(component.requirements)} requirements, "
                f"expected {instance.dimension_count}")
        if any(value < 0 for value in component.requirements):
            raise InvalidInstanceError(f"Component {component.name!r} has a negative requirement")
    
    for offer in instance.offers:
        if len(offer.capacities) != instance.dimension_count:
            raise InvalidInstanceError(
                f"Offer {offer.name!r} has {len(offer.capacities)} capacities, "
                f"expected {instance.dimension_count}")
        if any(value < 0 for value in offer.capacities) or offer.price < 0:
            raise InvalidInstanceError(f"Offer {offer.name!r} has a negative capacity or price")
    
    known = set(names)
    unknown = sorted(set(instance.rules.referenced_components()) - known)
    if unknown:
        raise InvalidInstanceError(f"Rules reference unknown components: {unknown}")
    
    for rule in instance.rules.cardinalities:
        if not rule.components:
            raise InvalidInstanceError("Cardinality rule without components")
        if rule.bound < 0:
            raise InvalidInstanceError(f"Cardinality bound must be non-negative: {rule}")
        if not isinstance(rule.operator, ComparisonOperator):
            raise InvalidInstanceError(f"Invalid cardinality operator: {rule.operator!r}")
    
    for rule in instance.rules.ratios:
        if rule.consumer_ratio < 0 or rule.provider_ratio < 0:
            raise InvalidInstanceError(f"Ratio factors must be non-negative: {rule}")
    
    for rule in instance.rules.conflicts:
        if rule.component in rule.conflicts_with:
            raise InvalidInstanceError(f"Component {rule.component!r} cannot conflict with itself")
    
    for rule in instance.rules.colocations:
        if not rule.primaries:
            raise InvalidInstanceError(f"Co-location rule for {rule.dependent!r} has no primaries")
        if rule.dependent in rule.primaries:
            raise InvalidInstanceError(
                f"Co-location dependent {rule.dependent!r} is also a primary")


def find_unplaceable_components(instance: ProblemInstance) -> List[InstanceIssue]:
    """
    Find components that no offer can ever host.
    One issue per offending dimension, or a single dimensionless issue when
    every dimension fits some offer but no single offer fits all of them.
    """
    requirements = instance.requirement_matrix
    capacities = instance.capacity_matrix
    max_capacity = capacities.max(axis=0)
    
    issues: List[InstanceIssue] = []
    for component_idx, dimension_idx in np.argwhere(requirements > max_capacity):
        issues.append(InstanceIssue(
            component=instance.components[component_idx].name,
            dimension=instance.dimensions[dimension_idx],
            requirement=int(requirements[component_idx, dimension_idx]),
            max_capacity=int(max_capacity[dimension_idx])
        ))
    
    flagged = {issue.component for issue in issues}
    # fits[c, o] is True when offer o covers component c in every dimension
    fits = np.all(requirements[:, None, :] <= capacities[None, :, :], axis=2)
    for component_idx in np.flatnonzero(~fits.any(axis=1)):
        name = instance.components[component_idx].name
        if name not in flagged:
            issues.append(InstanceIssue(
                component=name, dimension=None,
                requirement=int(requirements[component_idx].max()),
                max_capacity=int(max_capacity.max())
            ))
    
    return issues


def validate_instance(instance: ProblemInstance, strict: bool = False) -> List[InstanceIssue]:
    """
    Validate an instance before search.
    
    Malformed instances always raise InvalidInstanceError. Components that
    no offer can host are returned as issues, or raised when `strict`.
    """
    check_structure(instance)
    issues = find_unplaceable_components(instance)
    
    for issue in issues:
        logger.warning(f"Instance '{instance.name}': {issue.description}")
    
    if strict and issues:
        raise InvalidInstanceError(
            f"Instance '{instance.name}' has {len(issues)} unplaceable component(s): "
            + "; ".join(issue.description for issue in issues),
            issues
        )
    
    return issues
