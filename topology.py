#!/usr/bin/env python3
"""
topology.py - Application Topologies
====================================
Builds problem instances for the secure web application topology (from
`Config.TOPOLOGY`) and for the small balancer/worker/agent scenario.
"""

from typing import Any, Dict, Optional
import logging

from config import Config
from models import (
    CardinalityRule, ColocationRule, ComparisonOperator, Component, ConflictRule,
    ImplicationRule, PlacementRules, ProblemInstance, RatioRule, VMOffer
)

logger = logging.getLogger(__name__)


def secure_web_rules(topology: Dict[str, Any]) -> PlacementRules:
    """Structural rules of the secure web application."""
    balancer = topology['balancer']
    workers = tuple(topology['workers'])
    agent = topology['agent']
    gateway = topology['gateway']
    security = topology['security']
    
    conflicts = [ConflictRule(balancer, tuple(topology['balancer_exclusions']))]
    # Each slot runs at most one worker flavor
    for i, worker in enumerate(workers[:-1]):
        conflicts.append(ConflictRule(worker, workers[i + 1:]))
    
    return PlacementRules(
        cardinalities=(
            CardinalityRule((balancer,), ComparisonOperator.EQUAL, 1),
            CardinalityRule(workers, ComparisonOperator.AT_LEAST, topology['min_workers']),
        ),
        conflicts=tuple(conflicts),
        ratios=(RatioRule.provide(gateway, agent, topology['agents_per_gateway']),),
        implications=(
            ImplicationRule(agent, gateway),
            ImplicationRule(gateway, security),
        ),
        colocations=(ColocationRule(agent, workers),),
    )


def build_secure_web_instance(slot_count: Optional[int] = None,
                              topology: Optional[Dict[str, Any]] = None) -> ProblemInstance:
    """
    Instance of the secure web application topology.
    
    Args:
        slot_count: Size of the slot pool (default: TOPOLOGY['slots'])
        topology: Topology section to use instead of the configured one
    """
    topology = topology or Config.TOPOLOGY
    components = [Component(name, tuple(int(x) for x in req))
                  for name, req in topology['components'].items()]
    offers = [VMOffer(name, tuple(int(x) for x in spec['capacities']), int(spec['price']))
              for name, spec in topology['offers'].items()]
    
    instance = ProblemInstance(
        components=components,
        offers=offers,
        slot_count=slot_count if slot_count is not None else int(topology['slots']),
        rules=secure_web_rules(topology),
        dimensions=tuple(topology['dimensions']),
        name="secure-web"
    )
    logger.debug(f"Built {instance.name}: {instance.component_count} components, "
                 f"{instance.offer_count} offers, {instance.slot_count} slots")
    return instance


def build_scenario_instance() -> ProblemInstance:
    """
    Three slots, two offers and a balancer with workers that each need a
    co-located agent. The cheapest placement costs 25.
    """
    return ProblemInstance(
        components=[
            Component("balancer", (1, 1, 1)),
            Component("worker", (2, 4, 1)),
            Component("agent", (1, 1, 1)),
        ],
        offers=[
            VMOffer("large", (4, 8, 2), 10),
            VMOffer("small", (2, 4, 1), 5),
        ],
        slot_count=3,
        rules=PlacementRules(
            cardinalities=(
                CardinalityRule(("balancer",), ComparisonOperator.EQUAL, 1),
                CardinalityRule(("worker",), ComparisonOperator.AT_LEAST, 2),
            ),
            conflicts=(ConflictRule("balancer", ("worker",)),),
            colocations=(ColocationRule("agent", ("worker",)),),
        ),
        name="scenario"
    )
