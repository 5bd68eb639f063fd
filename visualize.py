import glob
import json
import os
import pandas as pd
import matplotlib.pyplot as plt

import orbitlab.config as cfg
from orbitlab.analysis import best_per_generation, summarize_generations
from orbitlab.genome import GENE_NAMES
from orbitlab.plotting import plot_evolution
from orbitlab.run_metadata import make_run_dir, save_run_metadata


def main() -> None:
    print("--- STARTING VISUALIZATION ---")
    print(f"Reading data from: {cfg.OUTPUT_DIR}")

    # 1) Load data (generation files only; best_genome.json lives in the same folder)
    files = sorted(glob.glob(os.path.join(cfg.OUTPUT_DIR, "generation_*.parquet")))
    if not files:
        print("Error: no generation files found. Run main.py first.")
        return
    try:
        df = pd.concat([pd.read_parquet(p, engine="pyarrow") for p in files], ignore_index=True)
    except ImportError:
        print("Error: missing dependency 'pyarrow'. Install it with: pip install pyarrow")
        return
    except Exception as e:
        print(f"Error while reading parquet data: {e}")
        return

    if len(df) == 0:
        print("Error: no rows found. Make sure main.py generated parquet files.")
        return

    # 2) Statistics
    summary = summarize_generations(df)
    best_genes = best_per_generation(df, [g for g in GENE_NAMES if g in df.columns])
    last_generation = summary.index.max()
    final_fitness = df.loc[df["generation"] == last_generation, "fitness"].to_numpy()

    print(summary.to_string(float_format=lambda v: f"{v:.4f}"))

    # 3) Plot
    print("Rendering plots...")
    fig = plot_evolution(summary, best_genes, final_fitness)

    # 4) Save run artifacts (always)
    run_dir = make_run_dir(base_dir="outputs", prefix="vis")

    fig_path = os.path.join(run_dir, "figure.png")
    fig.savefig(fig_path, dpi=200)
    print(f"Saved figure: {fig_path}")

    best_record = None
    best_path = os.path.join(cfg.OUTPUT_DIR, "best_genome.json")
    if os.path.exists(best_path):
        with open(best_path, encoding="utf-8") as f:
            best_record = json.load(f)

    dirty = save_run_metadata(run_dir, cfg, {
        "run_type": "visualization",
        "output_dir": run_dir,
        "input_data_dir": cfg.OUTPUT_DIR,
        "generations": int(summary.shape[0]),
        "genomes": int(len(df)),
        "best_fitness": float(summary["best"].max()),
        "failed_evaluations": int((df["error"] != "").sum()) if "error" in df.columns else 0,
        "best_genome": best_record,
    })
    if dirty:
        print("WARNING: working tree has uncommitted changes.")
        print("         Commit hash may not fully describe the code used.")

    plt.show()


if __name__ == "__main__":
    main()
