# tracking_mpc/solve_once.py
"""
Run one control cycle from the command line.

Usage:
    python -m tracking_mpc.solve_once --state 0 0 0 10 0 0 --coeffs 0 0 0 0
    python -m tracking_mpc.solve_once --state 0 0 0 10 --coeffs 1 0 0 0 --json

With four state values (x y psi v), cte and epsi are taken from the polynomial.
"""

import argparse
import json
import sys
from typing import List, Optional

from tracking_mpc.config import load_config
from tracking_mpc.controller import MPCController
from tracking_mpc.reference import ReferencePolynomial


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Solve one path-tracking MPC cycle")
    parser.add_argument("--state", type=float, nargs="+", required=True,
                        help="x y psi v [cte epsi]")
    parser.add_argument("--coeffs", type=float, nargs="+", required=True,
                        help="Reference polynomial coefficients, ascending powers")
    parser.add_argument("--config", type=str, default=None,
                        help="MPC config YAML (defaults to the packaged config_mpc.yaml)")
    parser.add_argument("--json", action="store_true", help="Print the command as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Print solver diagnostics")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if len(args.state) not in (4, 6):
        print(f"[ERROR] --state needs 4 or 6 values, got {len(args.state)}", file=sys.stderr)
        return 2

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 2
    if args.verbose:
        config.verbose = True

    try:
        poly = ReferencePolynomial(args.coeffs)
    except ValueError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 2

    state = list(args.state)
    if len(state) == 4:
        cte, epsi = poly.tracking_errors(state[0], state[1], state[2])
        state += [float(cte), float(epsi)]

    controller = MPCController(config)
    try:
        cmd = controller.compute_control(state, poly)
    except ValueError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(cmd.to_dict()))
    else:
        print("=" * 60)
        print(f"Status:        {cmd.status.value}{' (fallback)' if cmd.used_fallback else ''}")
        print(f"Steering:      {cmd.steering:+.5f} rad")
        print(f"Acceleration:  {cmd.acceleration:+.5f}")
        print(f"Cost:          {cmd.cost:.4f}")
        for i, (px, py) in enumerate(cmd.predicted_points, start=1):
            print(f"  step {i:2d}: x={px:8.3f}  y={py:8.3f}")
        print("=" * 60)

    return 1 if cmd.used_fallback else 0


if __name__ == "__main__":
    sys.exit(main())
