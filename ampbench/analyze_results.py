"""Analyze multi-run timing CSVs from ``python -m ampbench --mode multi_run_timing``."""

import argparse
import os
import sys

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

CSV_FILENAME = "ampbench_results.csv"
PLOT_DIR = "ampbench_plots"
RUNTIME_PLOT = "engine_runtime.png"
SPEEDUP_PLOT = "accelerator_speedup.png"

CPU_ENGINE = "CPU"
ACCEL_ENGINE = "AMP"


def prepare_dataframe(path: str) -> pd.DataFrame:
    df = pd.read_csv(path, na_values=["NA", "nan"])

    if "time_sec" not in df.columns:
        raise ValueError("CSV is missing 'time_sec'. Rerun with --mode multi_run_timing.")

    for col in ["M", "N", "W", "rep", "time_sec"]:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")

    df = df.dropna(subset=["engine", "N", "time_sec"])
    df["size"] = df["M"].astype(int).astype(str) + "x" + df["N"].astype(int).astype(str) \
        + "x" + df["W"].astype(int).astype(str)
    df["time_ms"] = df["time_sec"] * 1000.0
    return df


def summarize(df: pd.DataFrame) -> pd.DataFrame:
    """Mean and best time per (op, engine, size)."""
    return (
        df.groupby(["op", "engine", "size", "N"], as_index=False)["time_sec"]
        .agg(avg_time_sec="mean", min_time_sec="min")
        .sort_values(["op", "N", "engine"])
    )


def speedup_table(df: pd.DataFrame) -> pd.DataFrame:
    """CPU mean time over accelerator mean time, per (op, size)."""
    pivot = df.pivot_table(
        index=["op", "size", "N"],
        columns="engine",
        values="time_sec",
        aggfunc="mean",
    )

    if CPU_ENGINE not in pivot.columns or ACCEL_ENGINE not in pivot.columns:
        return pd.DataFrame(columns=["op", "size", "N", "speedup"])

    pivot["speedup"] = pivot[CPU_ENGINE] / pivot[ACCEL_ENGINE]
    return pivot.reset_index()[["op", "size", "N", "speedup"]].sort_values(["op", "N"])


def _ensure_plot_dir(path: str) -> None:
    if not os.path.exists(path):
        os.makedirs(path)


def _plot_runtime(df: pd.DataFrame, plot_dir: str) -> str:
    fig, ax = plt.subplots(figsize=(10, 6))
    sns.lineplot(
        data=df,
        x="N",
        y="time_ms",
        hue="engine",
        style="op",
        marker="o",
        ax=ax,
    )

    ax.set_title("Runtime vs. Matrix Size (CPU vs Accelerator)")
    ax.set_xlabel("N")
    ax.set_ylabel("Time (ms)")
    ax.set_yscale("log")

    plt.tight_layout()
    output_path = os.path.join(plot_dir, RUNTIME_PLOT)
    fig.savefig(output_path, dpi=300)
    plt.close(fig)
    print(f"Saved runtime plot: {output_path}")
    return output_path


def _plot_speedup(speedups: pd.DataFrame, plot_dir: str):
    if speedups.empty:
        print("Warning: Need both CPU and AMP rows for a speedup plot; skipping.")
        return None

    fig, ax = plt.subplots(figsize=(10, 6))
    sns.barplot(data=speedups, x="size", y="speedup", hue="op", ax=ax)
    ax.set_title("Accelerator Speedup over CPU (Higher is Better)")
    ax.set_xlabel("M x N x W")
    ax.set_ylabel("CPU Runtime / Accelerator Runtime")

    plt.tight_layout()
    output_path = os.path.join(plot_dir, SPEEDUP_PLOT)
    fig.savefig(output_path, dpi=300)
    plt.close(fig)
    print(f"Saved speedup plot: {output_path}")
    return output_path


def build_parser():
    parser = argparse.ArgumentParser(description="Plot CPU vs accelerator timing results")
    parser.add_argument("csv", nargs="?", default=CSV_FILENAME, help="Timing CSV from multi_run_timing mode")
    parser.add_argument("plot_dir", nargs="?", default=PLOT_DIR, help="Directory for the plots")
    return parser


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)
    csv_filename, plot_dir = args.csv, args.plot_dir
    try:
        df = prepare_dataframe(csv_filename)
    except FileNotFoundError:
        print(
            f"Error: '{csv_filename}' not found. Run "
            f"'python -m ampbench --mode multi_run_timing > {csv_filename}' first.",
            file=sys.stderr,
        )
        sys.exit(1)

    if df.empty:
        print("No valid benchmark rows found in the CSV.")
        sys.exit(1)

    print(f"Loaded {len(df)} rows from '{csv_filename}'.")

    _ensure_plot_dir(plot_dir)
    _plot_runtime(df, plot_dir)
    speedups = speedup_table(df)
    _plot_speedup(speedups, plot_dir)

    print("\nAverage runtime per engine:")
    print(summarize(df).to_string(index=False))

    if not speedups.empty:
        best_row = speedups.loc[speedups["speedup"].idxmax()]
        print(
            "\nBest observed speedup: {size} ({op}), speedup={speedup:.2f}x".format(
                size=best_row["size"], op=best_row["op"], speedup=best_row["speedup"]
            )
        )


if __name__ == "__main__":
    main()
