"""
Trace runner CLI: replay a branch trace through the reference model and/or
the predictor gateware in simulation.

Usage:
  python -m bench.trace_runner spike_log.txt --mode ref
  python -m bench.trace_runner spike_log.txt --mode hw_sim --interface serial
  python -m bench.trace_runner spike_log.txt --mode both --max-branches 200
  python -m bench.trace_runner --oracle expected.txt --mode hw_sim

In `ref` mode one oracle line is printed per branch.  In `hw_sim` and
`both` modes every hardware record is checked against the expected record
(from --oracle, or from the reference model) and mismatches are reported;
the exit status is 1 if any branch mismatches.
"""

import argparse
import json
import os
import sys
import time
from dataclasses import asdict

from .reference_model import (ReferencePredictor, PredictorConfig,
                              format_branch_log, compare_records)
from .trace_parser import load_spike_trace, load_branch_log


def run_reference(config, branches):
    """Run the golden model. Returns dict of results."""
    model = ReferencePredictor(config)
    t0 = time.perf_counter()
    records = model.run(branches)
    elapsed = time.perf_counter() - t0
    return {
        "mode": "ref",
        "time_s": round(elapsed, 6),
        "records": records,
    }


def run_hw_sim(config, branches, interface, vcd_path=None, verbose=False):
    """Run the gateware in Amaranth simulation. Returns dict of results."""
    from .hw_predictor_sim import HWPredictorSimulator

    sim = HWPredictorSimulator(config, interface=interface, verbose=verbose)
    t0 = time.perf_counter()
    records, counters = sim.run(branches, vcd_path=vcd_path)
    elapsed = time.perf_counter() - t0
    return {
        "mode": "hw_sim",
        "sim_time_s": round(elapsed, 3),
        "records": records,
        "counters": counters,
    }


def accuracy(records):
    if not records:
        return 0.0
    correct = sum(1 for r in records if r.prediction == r.taken)
    return correct / len(records)


def check_records(expected, actual):
    """Compare record lists. Returns list of (branch_number, errors)."""
    mismatches = []
    if len(expected) != len(actual):
        mismatches.append((-1, [f"record count: expected {len(expected)}, "
                                f"got {len(actual)}"]))
    for n, (exp, act) in enumerate(zip(expected, actual)):
        errors = compare_records(exp, act)
        if errors:
            mismatches.append((n, errors))
    return mismatches


def build_config(args):
    return PredictorConfig(
        addr_bits=args.addr_bits,
        history_length=args.history_length,
        weight_bits=args.weight_bits,
        table_bytes=args.table_bytes,
    )


def load_inputs(args):
    """Returns (branches, expected_records_or_None)."""
    if args.oracle:
        if not os.path.isfile(args.oracle):
            print(f"Error: oracle file '{args.oracle}' not found")
            sys.exit(1)
        expected = load_branch_log(args.oracle)
        branches = [(r.address, r.taken) for r in expected]
        return branches, expected

    if not args.trace or not os.path.isfile(args.trace):
        print(f"Error: trace file '{args.trace}' not found")
        sys.exit(1)
    return load_spike_trace(args.trace), None


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Replay a branch trace through the perceptron predictor")
    parser.add_argument("trace", nargs="?",
                        help="spike commit log to extract branches from")
    parser.add_argument("--oracle",
                        help="branch-log file with expected records")
    parser.add_argument("--mode", choices=["ref", "hw_sim", "both"],
                        default="ref", help="Run mode (default: ref)")
    parser.add_argument("--interface", choices=["strobe", "serial"],
                        default="strobe",
                        help="Host link used in hw_sim (default: strobe)")
    parser.add_argument("--max-branches", type=int, default=0,
                        help="Max branches to replay (0=all)")
    parser.add_argument("--addr-bits", type=int, default=16)
    parser.add_argument("--history-length", type=int, default=7)
    parser.add_argument("--weight-bits", type=int, default=8)
    parser.add_argument("--table-bytes", type=int, default=64)
    parser.add_argument("--vcd", help="write a VCD of the hw_sim run")
    parser.add_argument("--output", help="save a JSON summary to this path")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    branches, expected = load_inputs(args)
    if args.max_branches > 0:
        branches = branches[:args.max_branches]
        if expected is not None:
            expected = expected[:args.max_branches]

    print(f"NUM_PERCEPTRONS: {config.num_perceptrons}")
    print(f"STORAGE_PER_PERCEPTRON: {config.perceptron_size}")
    print(f"Replaying {len(branches)} branches (mode={args.mode})")

    summary = {"mode": args.mode, "config": asdict(config),
               "num_branches": len(branches)}
    failed = False

    if args.mode in ("ref", "both") or expected is None:
        ref = run_reference(config, branches)
        if args.mode in ("ref", "both"):
            for record in ref["records"]:
                print(format_branch_log(record))
            print(f"Accuracy: {accuracy(ref['records']):.4f}")
            summary["ref"] = {"time_s": ref["time_s"],
                              "accuracy": accuracy(ref["records"])}
        if expected is None:
            expected = ref["records"]
        elif args.mode in ("ref", "both"):
            mismatches = check_records(expected, ref["records"])
            if mismatches:
                failed = True
                print(f"Reference model disagrees with oracle on "
                      f"{len(mismatches)} branch(es)")

    if args.mode in ("hw_sim", "both"):
        hw = run_hw_sim(config, branches, args.interface,
                        vcd_path=args.vcd, verbose=args.verbose)
        counters = hw["counters"]
        mismatches = check_records(expected, hw["records"])
        for n, errors in mismatches:
            failed = True
            print(f"  MISMATCH branch {n}: " + "; ".join(errors))

        print(f"HW accuracy: {accuracy(hw['records']):.4f}")
        print(f"HW cycles: total={counters.total_cycles} "
              f"clear={counters.clear_cycles} input={counters.input_cycles} "
              f"engine={counters.engine_cycles}")
        print(f"Sim time: {hw['sim_time_s']:.3f}s")
        print("HW matches expected records." if not mismatches
              else f"{len(mismatches)} mismatching branch(es).")

        counter_dict = asdict(counters)
        counter_dict.pop("per_sample_cycles")
        summary["hw"] = {"sim_time_s": hw["sim_time_s"],
                         "accuracy": accuracy(hw["records"]),
                         "mismatches": len(mismatches),
                         "counters": counter_dict}

    if args.output:
        out_dir = os.path.dirname(args.output)
        if out_dir:
            os.makedirs(out_dir, exist_ok=True)
        with open(args.output, "w") as f:
            json.dump(summary, f, indent=2)
        print(f"Results saved to {args.output}")

    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
