from __future__ import annotations

import sys
import argparse
from itertools import product
from pathlib import Path
from typing import Dict, List

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm import tqdm

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from farmsim import ConfigError, FarmSim, SimConfig
from farmsim.policies import POLICY_FUNCS


# ------------------- 全局配置 -------------------
HORIZON = 20000
N_REPEAT = 4
GLOBAL_SEED = 42
N_JOBS = -1
RATES = [10.0, 20.0, 30.0, 40.0, 50.0, 60.0, 70.0, 80.0]

RESULT_DIR = ROOT / "results"
FIG_DIR = RESULT_DIR / "figures"

PLOTTED_METRICS = [
    ("throughput", "Throughput (req/tick)"),
    ("avg_latency", "Avg latency (ticks)"),
    ("hit_rate", "Cache hit rate"),
    ("accept_rate", "Accept rate"),
]


def run_single_simulation(policy: str, rate: float, seed: int, horizon: int) -> Dict[str, float]:
    sim = FarmSim(SimConfig(policy=policy, rate=rate, horizon=horizon, seed=seed))
    metrics = sim.run(verbose=False)
    metrics.pop("reports")
    return metrics


def aggregate_metrics(metrics: List[Dict[str, float]]) -> Dict[str, float]:
    df = pd.DataFrame(metrics).drop(columns=["policy", "seed"])
    means = df.mean()
    return {f"{k}_mean": float(means[k]) for k in df.columns}


def plot_sweep(df: pd.DataFrame, out_path: Path) -> None:
    fig, axes = plt.subplots(2, 2, figsize=(16, 11))
    colors = plt.cm.viridis(np.linspace(0.1, 0.95, df["policy"].nunique()))
    for ax, (col, label) in zip(axes.flatten(), PLOTTED_METRICS):
        for color, (policy, sub) in zip(colors, df.groupby("policy")):
            sub = sub.sort_values("rate")
            ax.plot(sub["rate"], sub[f"{col}_mean"], marker="o", color=color, linewidth=2.0, label=policy)
        ax.set_xlabel("Arrival rate (req/tick)", fontsize=14, fontweight="semibold", color="#1f1f2e")
        ax.set_ylabel(label, fontsize=14, fontweight="semibold", color="#1f1f2e")
        ax.grid(True, which="major", linestyle="--", linewidth=0.5, alpha=0.3, color="#7c8aa6")
        for spine in ["top", "right"]:
            ax.spines[spine].set_visible(False)
        ax.set_facecolor("#f4f6fb")
        ax.legend(fontsize=11, frameon=True, fancybox=True, framealpha=0.9)
    fig.patch.set_facecolor("#eef1f7")
    fig.tight_layout()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out_path, dpi=200, format="jpg")
    plt.close(fig)


def main() -> None:
    parser = argparse.ArgumentParser(description="Sweep arrival rate for every dispatch policy")
    parser.add_argument("--horizon", type=int, default=HORIZON, help=f"Ticks with arrivals per run (default: {HORIZON})")
    parser.add_argument("--n_repeat", type=int, default=N_REPEAT, help=f"Seeds per (policy, rate) (default: {N_REPEAT})")
    parser.add_argument("--seed", type=int, default=GLOBAL_SEED, help=f"First seed (default: {GLOBAL_SEED})")
    parser.add_argument("--n_jobs", type=int, default=N_JOBS, help="Parallel jobs, -1 means all cores (default: -1)")
    parser.add_argument("--rates", type=float, nargs="+", default=RATES, help="Arrival rates to sweep")
    parser.add_argument("--policies", type=str, nargs="+", default=list(POLICY_FUNCS), help="Policies to sweep")
    args = parser.parse_args()

    # 启动前校验配置，错误直接退出
    for policy, rate in product(args.policies, args.rates):
        try:
            SimConfig(policy=policy, rate=rate, horizon=args.horizon).validate()
        except ConfigError as e:
            parser.error(str(e))

    seeds = (np.arange(args.n_repeat) + args.seed).astype(int)
    grid = list(product(args.policies, args.rates))
    results: List[Dict[str, float]] = []

    with tqdm(total=len(grid) * args.n_repeat, desc="Simulations", ncols=80) as sim_pbar:
        for policy, rate in tqdm(grid, desc="Policy x rate", ncols=80):
            metrics_per_seed = Parallel(n_jobs=args.n_jobs)(
                delayed(run_single_simulation)(
                    policy=policy,
                    rate=float(rate),
                    seed=int(seed),
                    horizon=args.horizon,
                )
                for seed in seeds
            )
            sim_pbar.update(args.n_repeat)

            avg_metrics = aggregate_metrics(list(metrics_per_seed))
            avg_metrics.update({"policy": policy, "rate": float(rate)})
            results.append(avg_metrics)
            tqdm.write(
                f"Completed {policy} rate={rate:g}: throughput={avg_metrics['throughput_mean']:.3f}, "
                f"hit={100 * avg_metrics['hit_rate_mean']:.2f}%, latency={avg_metrics['avg_latency_mean']:.2f}"
            )

    df_results = pd.DataFrame(results)
    column_order = ["policy", "rate"] + sorted(
        [col for col in df_results.columns if col not in {"policy", "rate"}]
    )
    df_results = df_results[column_order]
    output_csv = RESULT_DIR / "arrival_rate_sweep.csv"
    output_csv.parent.mkdir(parents=True, exist_ok=True)
    df_results.to_csv(output_csv, index=False)
    plot_sweep(df_results, FIG_DIR / "arrival_rate_sweep.jpg")
    print(f"Results saved to: {output_csv}")


if __name__ == "__main__":
    main()
