"""
setreach Command Line Interface.

Usage:
    setreach reach request.yaml [--json] [--plot flowpipe.png] [--verbose]
    setreach validate request.yaml
"""

from __future__ import annotations

import argparse
import json
import logging
import sys


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="setreach",
        description="setreach: set-based reachability analysis of continuous and hybrid systems",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # reach command
    reach_parser = subparsers.add_parser(
        "reach",
        help="Compute the flowpipe of a request",
    )
    reach_parser.add_argument(
        "request",
        help="Path to request YAML file",
    )
    reach_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the summary as JSON",
    )
    reach_parser.add_argument(
        "--plot",
        help="Save a plot of the first two states to this file",
    )
    reach_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output",
    )

    # validate command
    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate a request file without propagating",
    )
    validate_parser.add_argument(
        "request",
        help="Path to request YAML file",
    )

    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


def cmd_reach(args) -> int:
    """Run a reachability request."""
    from setreach.config.request import ReachRequest
    from setreach.errors import ReachError

    _configure_logging(args.verbose)
    try:
        request = ReachRequest.from_yaml(args.request)
        flowpipe = request.run()
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ReachError as e:
        print(f"Error during reachability analysis: {e}", file=sys.stderr)
        return 1

    summary = flowpipe.summary()
    summary["name"] = request.name
    if args.json:
        print(json.dumps(summary, indent=2))
    else:
        print(f"\nReachability analysis complete for: {request.name}")
        print(f"  Steps: {summary['steps']}")
        print(f"  Final time: {summary['final_time']:.6g}")
        print(f"  Final set lower bounds: {summary['final_inf']}")
        print(f"  Final set upper bounds: {summary['final_sup']}")
        print(f"  Max abstraction error: {summary['max_error']:.3g}")
        if summary["violated"]:
            print("  Unsafe set reached: propagation stopped")

    if args.plot:
        from setreach.plotting import plot_flowpipe

        ax = plot_flowpipe(flowpipe)
        ax.figure.savefig(args.plot)
        print(f"\nPlot saved to: {args.plot}")
    return 0


def cmd_validate(args) -> int:
    """Validate a request file."""
    from setreach.config.request import ReachRequest
    from setreach.errors import ReachError

    try:
        request = ReachRequest.from_yaml(args.request)
        system, R0, U, options = request.build()
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ReachError as e:
        print(f"\nErrors:\n  - {e}", file=sys.stderr)
        return 1

    print(f"Request file: {args.request}")
    print(f"  System: {system!r}")
    print(f"  Initial set: dim {R0.dim}, {R0.num_generators} generators")
    print(f"  Inputs: {'none' if U is None else f'{U.num_generators} generators'}")
    print(f"  Algorithm: {options.alg}, t_final={options.t_final}, time_step={options.time_step}")
    print("\nValidation passed!")
    return 0


def main(argv=None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "reach":
        return cmd_reach(args)
    elif args.command == "validate":
        return cmd_validate(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
