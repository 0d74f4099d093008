import argparse
import sys

import numpy as np

from . import report
from .accel_matmul import AcceleratorEngine
from .cpu_matmul import CpuEngine
from .devices import AcceleratorRegistry, is_gpu, supports_host_shared_memory
from .errors import DeviceExecutionError

DEFAULT_SIZE = 1024

# Selection policies. "default" keeps the system default device.
POLICIES = {
    "host-shared": supports_host_shared_memory,
    "gpu": is_gpu,
    "default": None,
}


def make_inputs(M, N, W, op="mul"):
    """A counts up from 0, B counts down from where A stopped."""
    a_len, b_len = (M * W, W * N) if op == "mul" else (M * N, M * N)
    A = np.arange(a_len, dtype=np.int64).astype(np.int32)
    B = (a_len - np.arange(b_len, dtype=np.int64)).astype(np.int32)
    return A, B


def choose_device(registry, policy, file=None):
    """Apply one selection policy; listing, reporting and compute all use its result."""
    predicate = POLICIES[policy]
    if predicate is not None and not registry.select_device(predicate):
        print(f"Warning: no accelerator matches policy '{policy}', using the system default.",
              file=sys.stderr)
    device = registry.active_device()
    report.print_active_device(device, file=file)
    return device


def run_once(engine, op, A, B, C, M, N, W):
    if op == "mul":
        return engine.matmul(C, A, B, M, N, W)
    return engine.elementwise_add(C, A, B, M, N)


def benchmark_engine(engine, args, device_path, A, B, info):
    """Warm up (JIT compile), then time ``args.reps`` runs.

    Returns the output buffer, or None if the engine failed.
    """
    C = np.zeros(args.M * args.N, dtype=np.int32)
    try:
        run_once(engine, args.op, A, B, C, args.M, args.N, args.W)

        for rep in range(args.reps):
            C.fill(0)
            with report.timed(engine.name) as timing:
                run_once(engine, args.op, A, B, C, args.M, args.N, args.W)

            if args.mode == "multi_run_timing":
                report.print_csv_row(engine.name, args.op, device_path, args.M, args.N, args.W,
                                     rep + 1, timing.seconds)
            else:
                report.print_elapsed(engine.name, timing.seconds, file=info)
    except DeviceExecutionError as e:
        report.print_failure(engine.name, e)
        return None
    return C


def build_parser():
    parser = argparse.ArgumentParser(description="CPU vs accelerator int32 matrix multiplication benchmark")
    parser.add_argument("--M", type=int, default=DEFAULT_SIZE, help="Rows of A and C")
    parser.add_argument("--N", type=int, default=DEFAULT_SIZE, help="Columns of B and C")
    parser.add_argument("--W", type=int, default=DEFAULT_SIZE, help="Shared dimension")
    parser.add_argument("--op", type=str, default="mul", choices=["mul", "add"],
                        help="Matrix multiplication or element-wise addition (M x N)")
    parser.add_argument("--policy", type=str, default="host-shared", choices=sorted(POLICIES),
                        help="Accelerator selection policy")
    parser.add_argument("--reps", type=int, default=1, help="Number of timed repetitions")
    parser.add_argument("--mode", type=str, default="single_run",
                        choices=["single_run", "multi_run_timing"])
    parser.add_argument("--no-verify", action="store_true",
                        help="Skip the CPU vs accelerator cross-check")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    if min(args.M, args.N, args.W) < 0 or args.reps < 1:
        print("Error: sizes must be >= 0 and --reps >= 1", file=sys.stderr)
        return 2

    # Keep stdout clean for CSV rows in timing mode
    info = sys.stderr if args.mode == "multi_run_timing" else sys.stdout

    registry = AcceleratorRegistry()
    report.print_devices(registry.list_devices(), file=info)
    device = choose_device(registry, args.policy, file=info)

    A, B = make_inputs(args.M, args.N, args.W, args.op)

    print("Beginning calc", file=info)
    if args.mode == "multi_run_timing":
        print(report.CSV_HEADER)

    cpu_c = benchmark_engine(CpuEngine(), args, "host", A, B, info)
    amp_c = benchmark_engine(AcceleratorEngine(registry=registry), args, device.path, A, B, info)

    if args.no_verify or cpu_c is None or amp_c is None:
        return 0

    if not np.array_equal(cpu_c, amp_c):
        mismatches = int(np.count_nonzero(cpu_c != amp_c))
        print(f"VERIFICATION FAILED: {mismatches} elements differ", file=sys.stderr)
        return 1
    print("Verification successful.", file=info)
    return 0


if __name__ == "__main__":
    sys.exit(main())
