"""
Main entry point when running the local_planner module with python -m.

Subcommands:
    simulate    Run the planner against the built-in kinematic simulator
    connect     Drive a robot through a WebSocket bridge server
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .client import main, setup_logging
from .config import TERM_BLUE, TERM_ORANGE, TERM_RESET, WS_URI, load_params
from .data_collector import DataCollector
from .errors import ConfigurationError


def parse_point(text):
    parts = [float(v) for v in text.split(",")]
    if len(parts) not in (2, 3):
        raise argparse.ArgumentTypeError(f"Expected 'x,y' or 'x,y,theta', got '{text}'")
    return tuple(parts)


def run_simulation(args) -> int:
    # Imported here so 'connect' does not pull in matplotlib
    from .simulation import Simulation, make_plan
    from .visualization import plot_run_summary

    waypoints = [p[:2] for p in args.waypoints]
    final_heading = args.waypoints[-1][2] if len(args.waypoints[-1]) == 3 else None
    plan = make_plan(waypoints, final_heading=final_heading)
    start = args.start if len(args.start) == 3 else (*args.start, 0.0)

    sim = Simulation(
        plan,
        start=start,
        params=load_params(args.config),
        obstacles=[p[:2] for p in args.obstacles] if args.obstacles else None,
        threaded_odometry=args.threaded_odometry,
    )

    collector = DataCollector(output_dir=args.output_dir) if args.save else None
    if collector is not None:
        collector.setup()
    try:
        result = sim.run(max_time=args.max_time, collector=collector, realtime=args.realtime)
    finally:
        if collector is not None:
            collector.cleanup()

    color = TERM_BLUE if result.reached else TERM_ORANGE
    status = "reached" if result.reached else "NOT reached"
    logging.info(
        f"{color}Goal {status} in {result.duration:.1f}s "
        f"({result.ticks} ticks, {result.failed_ticks} failed){TERM_RESET}"
    )

    if args.plot or args.show:
        output_path = None
        if collector is not None:
            output_path = collector.run_dir / "run_summary.png"
        elif args.plot:
            output_path = Path(args.plot)
        plot_run_summary(
            result.trajectory,
            plan,
            obstacles=sim.obstacles,
            output_path=output_path,
            show_plot=args.show,
        )

    return 0 if result.reached else 1


def run_client(args) -> int:
    output_dir = args.output_dir if args.save else None
    asyncio.run(main(args.uri, load_params(args.config), output_dir))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Local trajectory planner: plan following and goal settling for a mobile base"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging with timestamps"
    )
    parser.add_argument("--config", type=str, default=None, help="JSON file of planner parameters")
    parser.add_argument("--save", action="store_true", help="Log ticks and odometry to CSV")
    parser.add_argument(
        "--output-dir", type=str, default=".", help="Base directory for results (default: .)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sim = subparsers.add_parser("simulate", help="Run against the kinematic simulator")
    sim.add_argument(
        "--waypoints",
        type=parse_point,
        nargs="+",
        default=[(0.0, 0.0), (2.0, 0.0), (2.0, 1.5, 1.5708)],
        help="Plan corners as x,y (last may be x,y,theta)",
    )
    sim.add_argument("--start", type=parse_point, default=(0.0, 0.0, 0.0), help="Start pose x,y[,theta]")
    sim.add_argument("--obstacles", type=parse_point, nargs="*", default=None, help="Obstacle points x,y")
    sim.add_argument("--max-time", type=float, default=60.0, help="Simulated time limit (seconds)")
    sim.add_argument("--realtime", action="store_true", help="Run at wall-clock speed")
    sim.add_argument(
        "--threaded-odometry", action="store_true", help="Deliver odometry from a separate thread"
    )
    sim.add_argument("--plot", type=str, default=None, help="Save a summary plot to this file")
    sim.add_argument("--show", action="store_true", help="Display the summary plot")
    sim.set_defaults(func=run_simulation)

    connect = subparsers.add_parser("connect", help="Connect to a WebSocket robot bridge")
    connect.add_argument("--uri", type=str, default=WS_URI, help=f"Bridge URI (default: {WS_URI})")
    connect.set_defaults(func=run_client)

    return parser


def cli() -> None:
    args = build_parser().parse_args()

    # Setup logging based on verbose flag
    setup_logging(args.verbose)

    try:
        sys.exit(args.func(args))
    except KeyboardInterrupt:
        logging.info("\nExiting...")
        sys.exit(0)
    except (ConfigurationError, RuntimeError, OSError, json.JSONDecodeError) as e:
        logging.error(str(e))
        sys.exit(2)


if __name__ == "__main__":
    cli()
