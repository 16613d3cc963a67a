#!/usr/bin/env python3
"""
VM Placement Engine
===================
Command-line entry point: solve a placement instance file, the secure web
topology (--demo) or the small scenario (--scenario) and print the result.
"""

import argparse
import logging
import sys
from typing import List, Optional

from config import Config
from models import ProblemInstance, SolveResult, SolveStatus, PlacementError
from placement_solver import PlacementSolver, SolverSettings
from topology import build_secure_web_instance, build_scenario_instance
from utils import setup_logging, save_json, load_instance

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NO_SOLUTION = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Minimum-cost placement of application components onto VM offers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --demo                              # Secure web topology
  %(prog)s --demo --slots 8 --workers 4        # Larger pool, parallel search
  %(prog)s instance.yaml --time-limit 60       # Instance file
  %(prog)s --scenario --output result.json     # Save the result
        """
    )
    
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "instance",
        nargs="?",
        help="Path to a problem instance (.json, .yml, .yaml)"
    )
    source.add_argument(
        "--demo",
        action="store_true",
        help="Solve the configured secure web topology"
    )
    source.add_argument(
        "--scenario",
        action="store_true",
        help="Solve the three-slot balancer/worker/agent scenario"
    )
    
    parser.add_argument(
        "--slots",
        type=int,
        help="Slot pool size for --demo (default: TOPOLOGY.slots)"
    )
    parser.add_argument(
        "--time-limit",
        type=float,
        help=f"Wall-clock limit in seconds (default: {Config.SOLVER['time_limit']})"
    )
    parser.add_argument(
        "--node-limit",
        type=int,
        help="Maximum number of branching decisions"
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Number of parallel search workers (1 = sequential)"
    )
    parser.add_argument(
        "--no-symmetry",
        action="store_true",
        help="Disable slot ordering symmetry breaking"
    )
    parser.add_argument(
        "--output",
        help="Write the result as JSON to this path"
    )
    parser.add_argument(
        "--config",
        help="Path to configuration file (.json, .yml, .yaml)"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )
    return parser


def settings_from_args(args: argparse.Namespace) -> SolverSettings:
    overrides = {
        'time_limit': args.time_limit,
        'node_limit': args.node_limit,
    }
    if args.no_symmetry:
        overrides['symmetry_breaking'] = False
    if args.workers is not None:
        overrides['parallel'] = args.workers > 1
        overrides['max_workers'] = args.workers
    return SolverSettings.from_config(**overrides)


def load_problem(args: argparse.Namespace) -> ProblemInstance:
    if args.demo:
        return build_secure_web_instance(args.slots)
    if args.scenario:
        return build_scenario_instance()
    return load_instance(args.instance)


def print_result(instance: ProblemInstance, result: SolveResult):
    print("\n" + "=" * 60)
    print("PLACEMENT RESULTS")
    print("=" * 60)
    print(f"Instance: {instance.name}")
    print(f"Components: {instance.component_count}, Offers: {instance.offer_count}, "
          f"Slots: {instance.slot_count}")
    print()
    print(f"Status: {result.status.value}")
    print(f"Solve Time: {result.solve_time:.2f}s")
    
    if result.issues:
        print("\nUnplaceable components:")
        for issue in result.issues:
            print(f"  {issue.description}")
    
    solution = result.solution
    if solution is not None:
        print(f"Total Cost: {solution.total_cost}")
        print("\nSlots:")
        for slot in solution.used_slots():
            hosted = ", ".join(solution.hosted_components(slot)) or "-"
            print(f"  slot {slot}: {solution.offer_name(slot)} "
                  f"(price {int(solution.slot_prices[slot])}) <- {hosted}")
        print("\nDeployments:")
        for name, count in solution.deployment_counts().items():
            print(f"  {name}: {count}")
    
    stats = result.statistics
    if stats:
        print(f"\nNodes: {stats.get('nodes', 0)}, Backtracks: {stats.get('backtracks', 0)}, "
              f"Prunes: {stats.get('bound_prunes', 0)}, "
              f"Root bound: {stats.get('root_lower_bound')}")
    
    if result.status is SolveStatus.OPTIMAL:
        print("\n✓ Optimal placement found")
    elif result.status is SolveStatus.FEASIBLE:
        print("\n⚠ Limit reached, placement not proven optimal")
    elif result.status is SolveStatus.TIMED_OUT:
        print("\n✗ Limit reached before any placement was found")
    else:
        print("\n✗ No placement satisfies the rules")
    print("=" * 60)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    
    setup_logging("DEBUG" if args.verbose else "INFO")
    
    try:
        if args.config:
            Config.from_file(args.config)
        
        instance = load_problem(args)
        result = PlacementSolver(settings_from_args(args)).solve(instance)
        print_result(instance, result)
        
        if args.output:
            save_json(result.to_dict(), args.output)
            print(f"\nResult saved to: {args.output}")
        
    except (PlacementError, OSError, ValueError) as e:
        logger.error(f"Error: {e}", exc_info=args.verbose)
        return EXIT_ERROR
    
    if result.status in (SolveStatus.OPTIMAL, SolveStatus.FEASIBLE):
        return EXIT_OK
    return EXIT_NO_SOLUTION


if __name__ == "__main__":
    sys.exit(main())
