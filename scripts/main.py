from __future__ import annotations

import sys
import argparse
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from joblib import Parallel, delayed

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from farmsim import ConfigError, FarmSim, SimConfig
from farmsim.config import (
    CACHE_SIZE,
    CACHED_TIME,
    CHOOSE2_BIAS,
    HORIZON,
    ITEM_PARAMETER,
    MAX_QUEUE,
    N_SERVERS,
    N_SLOTS,
    UNCACHED_TIME,
)
from farmsim.policies import POLICY_FUNCS

MAX_PLOTTED_STEPS = 4000
METRIC_COLUMNS = [
    "policy", "generated", "accepted", "dropped", "accept_rate",
    "throughput", "hit_rate", "avg_queue_delay", "avg_latency", "ticks",
]


# ------------------- Run one simulation -------------------
def run_sim_and_metrics(
    cfg: SimConfig,
    record_history: bool = False,
    verbose: bool = False,
    progress: bool = False,
) -> Tuple[FarmSim, Dict[str, float]]:
    sim = FarmSim(cfg, record_history=record_history, history_limit=MAX_PLOTTED_STEPS)
    metrics = sim.run(verbose=verbose, progress=progress)
    return sim, metrics


def run_policy(cfg_dict: Dict, policy: str, record_history: bool) -> Tuple[Optional[FarmSim], Dict[str, float]]:
    """Worker for --compare: each joblib process builds its own FarmSim."""
    cfg = SimConfig(**{**cfg_dict, "policy": policy})
    sim, metrics = run_sim_and_metrics(cfg, record_history=record_history)
    metrics.pop("reports")
    return (sim if record_history else None), metrics


# ------------------- Plotting functions -------------------
def plot_server_outstanding_subplot(ax, sim: FarmSim, title: str = "", metrics: Optional[Dict[str, float]] = None):
    """Per-server outstanding (queue + busy slots) over the first recorded ticks."""
    hist = np.vstack(sim.hist_outstanding[:MAX_PLOTTED_STEPS])   # (num_steps, n_servers)
    steps = np.array(sim.hist_steps[:MAX_PLOTTED_STEPS])
    colors = plt.cm.viridis(np.linspace(0.1, 0.95, sim.n_servers))
    for gid in range(sim.n_servers):
        ax.plot(steps, hist[:, gid], color=colors[gid], linewidth=1.0, alpha=0.6)
    ax.plot(steps, hist.max(axis=1), color="#c0392b", linewidth=1.8, label="max")
    ax.plot(steps, hist.mean(axis=1), color="#1f1f2e", linewidth=1.8, linestyle="--", label="mean")
    ax.set_xlabel("Tick", fontsize=14, fontweight="semibold", color="#1f1f2e")
    ax.set_ylabel("Outstanding requests per server", fontsize=14, fontweight="semibold", color="#1f1f2e")
    ax.set_title(title, fontsize=16, fontweight="bold", color="#1f1f2e", pad=10)
    ax.legend(fontsize=10, loc="lower right", frameon=True, fancybox=True, framealpha=0.9)
    ax.grid(True, which="major", linestyle="--", linewidth=0.5, alpha=0.3, color="#7c8aa6")
    for spine in ["top", "right"]:
        ax.spines[spine].set_visible(False)
    ax.set_facecolor("#f4f6fb")

    if metrics is not None:
        metrics_text = (
            f"Accepted: {100 * metrics['accept_rate']:.2f}%\n"
            f"Throughput: {metrics['throughput']:.3f} req/tick\n"
            f"Cache Hit: {100 * metrics['hit_rate']:.2f}%\n"
            f"Avg Q: {metrics['avg_queue_delay']:.2f}\n"
            f"Avg Tm: {metrics['avg_latency']:.2f}"
        )
        ax.text(
            0.02, 0.98, metrics_text,
            transform=ax.transAxes,
            fontsize=10,
            verticalalignment="top",
            bbox=dict(boxstyle="round", facecolor="white", alpha=0.8, edgecolor="gray"),
            family="monospace",
        )


def plot_policies(sims: Dict[str, Tuple[FarmSim, Dict[str, float]]], out_name: str) -> Path:
    n = len(sims)
    ncols = 2 if n > 1 else 1
    nrows = (n + ncols - 1) // ncols
    fig, axes = plt.subplots(nrows, ncols, figsize=(10 * ncols, 7 * nrows), squeeze=False)
    axes = axes.flatten()
    for ax, (name, (sim, metrics)) in zip(axes, sims.items()):
        plot_server_outstanding_subplot(ax, sim, title=name, metrics=metrics)
    for ax in axes[n:]:
        ax.set_visible(False)
    fig.patch.set_facecolor("#eef1f7")
    fig.tight_layout(rect=[0, 0, 1, 0.98], h_pad=3, w_pad=3)

    out_dir = ROOT / "results" / "figures"
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / f"{out_name}.jpg"
    fig.savefig(out_path, dpi=200, format="jpg")
    plt.close(fig)
    return out_path


def append_csv(df: pd.DataFrame, csv_file: Path):
    csv_file.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(csv_file, mode="a", header=not csv_file.exists(), index=False)


# ------------------- Main program -------------------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Simulate a load-balanced server farm with per-server LRU caches")
    parser.add_argument("policy", type=str, help=f"Dispatch policy, one of {sorted(POLICY_FUNCS)}")
    parser.add_argument("rate", type=float, help="Mean arrivals per tick (Poisson)")
    parser.add_argument("--servers", type=int, default=N_SERVERS, help=f"Number of servers (default: {N_SERVERS})")
    parser.add_argument("--slots", type=int, default=N_SLOTS, help=f"Processing slots per server (default: {N_SLOTS})")
    parser.add_argument("--cache_size", type=int, default=CACHE_SIZE, help=f"LRU entries per server, 0 disables (default: {CACHE_SIZE})")
    parser.add_argument("--cached_time", type=int, default=CACHED_TIME, help=f"Service ticks on a cache hit (default: {CACHED_TIME})")
    parser.add_argument("--uncached_time", type=int, default=UNCACHED_TIME, help=f"Service ticks on a cache miss (default: {UNCACHED_TIME})")
    parser.add_argument("--max_queue", type=int, default=MAX_QUEUE, help=f"Admission queue depth per server (default: {MAX_QUEUE})")
    parser.add_argument("--horizon", type=int, default=HORIZON, help=f"Last tick that generates requests (default: {HORIZON})")
    parser.add_argument("--item_parameter", type=float, default=ITEM_PARAMETER, help=f"Scale of the exponential key distribution (default: {ITEM_PARAMETER})")
    parser.add_argument("--bias", type=int, default=CHOOSE2_BIAS, help=f"modchoose2 margin (default: {CHOOSE2_BIAS})")
    parser.add_argument("--seed", type=int, default=None, help="Random seed (default: high-resolution clock)")
    parser.add_argument("--no_warmup_reset", action="store_true", help="Keep statistics from the first half of the horizon")
    parser.add_argument("--compare", action="store_true", help="Ignore POLICY and run every policy in parallel")
    parser.add_argument("--n_jobs", type=int, default=-1, help="Parallel jobs for --compare, -1 means all cores (default: -1)")
    parser.add_argument("--plot", action="store_true", help="Save a per-server outstanding figure under results/figures")
    parser.add_argument("--csv", type=str, default=None, help="Append final metrics to this CSV file")
    parser.add_argument("--progress", action="store_true", help="Show a progress bar")
    parser.add_argument("--log_level", type=str, default="WARNING", help="Logging level (default: WARNING)")
    return parser


def config_from_args(args) -> SimConfig:
    return SimConfig(
        policy=args.policy,
        rate=args.rate,
        n_servers=args.servers,
        n_slots=args.slots,
        cache_size=args.cache_size,
        cached_time=args.cached_time,
        uncached_time=args.uncached_time,
        max_queue=args.max_queue,
        horizon=args.horizon,
        item_parameter=args.item_parameter,
        choose2_bias=args.bias,
        warmup_reset=not args.no_warmup_reset,
        seed=args.seed,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(name)s %(levelname)s %(message)s")

    cfg = config_from_args(args)
    if args.compare:
        # POLICY 只用于占位，逐个策略覆盖
        cfg.policy = next(iter(POLICY_FUNCS))
    try:
        cfg.validate()
    except ConfigError as e:
        parser.error(str(e))

    if args.compare:
        if cfg.seed is None:
            cfg.seed = time.time_ns()
        policies = list(POLICY_FUNCS)
        outputs = Parallel(n_jobs=args.n_jobs)(
            delayed(run_policy)(cfg.as_dict(), p, args.plot) for p in policies
        )
        df = pd.DataFrame([m for _, m in outputs])[METRIC_COLUMNS]
        print(f"\n### rate = {cfg.rate}, seed = {cfg.seed} ###")
        print(df.to_string(index=False))
        if args.plot:
            out = plot_policies(dict(zip(policies, outputs)), f"compare_rate_{cfg.rate:g}")
            print(f"Figure saved to: {out}")
    else:
        sim, metrics = run_sim_and_metrics(cfg, record_history=args.plot, verbose=True, progress=args.progress)
        df = pd.DataFrame([metrics])[METRIC_COLUMNS]
        if args.plot:
            out = plot_policies({cfg.policy: (sim, metrics)}, f"{cfg.policy}_rate_{cfg.rate:g}")
            print(f"Figure saved to: {out}")

    if args.csv:
        df.insert(1, "rate", cfg.rate)
        append_csv(df, Path(args.csv))
        print(f"Results saved to: {args.csv}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
