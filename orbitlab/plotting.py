import numpy as np
import matplotlib.pyplot as plt
from matplotlib import colormaps

from .genome import GENE_SPECS


def plot_evolution(summary, best_genes, final_fitness):
    """
    Create a 3-panel figure for one GA run:
      1) Best / mean fitness per generation (mean +/- std band)
      2) Genes of the best genome per generation, normalized to their
         default search range (values outside [0, 1] mean the range expanded)
      3) Fitness distribution of the last generation

    Parameters
    ----------
    summary : pandas.DataFrame
        Output of analysis.summarize_generations (index = generation).
    best_genes : pandas.DataFrame
        Output of analysis.best_per_generation (index = generation, one column per gene).
    final_fitness : array-like
        Fitness values of the last generation.

    Returns
    -------
    fig : matplotlib.figure.Figure
    """
    fig, axs = plt.subplots(1, 3, figsize=(18, 6))

    # 1) Fitness curves
    gens = summary.index.to_numpy()
    axs[0].plot(gens, summary["best"], color="tab:green", marker="o", label="best")
    axs[0].plot(gens, summary["mean"], color="tab:blue", label="mean")
    axs[0].fill_between(
        gens,
        summary["mean"] - summary["std"],
        summary["mean"] + summary["std"],
        color="tab:blue",
        alpha=0.2,
    )
    axs[0].set_title("Fitness per generation")
    axs[0].set_xlabel("generation")
    axs[0].set_ylabel("fitness")
    axs[0].legend(loc="lower right", fontsize=8)

    # 2) Best-genome trajectories, normalized to the default range
    cmap = colormaps["tab20"]
    for i, name in enumerate(best_genes.columns):
        spec = GENE_SPECS.get(name)
        if spec is None:
            continue
        span = spec.high - spec.low
        norm = (best_genes[name].to_numpy() - spec.low) / span if span > 0 else best_genes[name].to_numpy()
        axs[1].plot(best_genes.index.to_numpy(), norm, color=cmap(i % 20), label=name, linewidth=1.2)
    axs[1].axhline(0.0, color="gray", linestyle="--", linewidth=0.8)
    axs[1].axhline(1.0, color="gray", linestyle="--", linewidth=0.8)
    axs[1].set_title("Best genome (normalized genes)")
    axs[1].set_xlabel("generation")
    axs[1].set_ylabel("position in default range")
    axs[1].legend(loc="upper left", fontsize=6, ncol=2)

    # 3) Last generation histogram
    values = np.asarray(final_fitness, dtype=np.float64)
    values = values[np.isfinite(values)]
    bins = min(20, max(5, values.size))
    axs[2].hist(values, bins=bins, color="tab:purple", alpha=0.8)
    axs[2].set_title("Final generation fitness")
    axs[2].set_xlabel("fitness")
    axs[2].set_ylabel("genomes")

    plt.tight_layout()
    return fig
