import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from main import generation_frame
from orbitlab.analysis import best_per_generation, summarize_generations
from orbitlab.fitness import FitnessResult
from orbitlab.ga import GAParameters, Population
from orbitlab.genome import GENE_NAMES
from orbitlab.plotting import plot_evolution


def launch_strength_fitness(genome, settings):
    return FitnessResult(fitness=genome.launch_strength, bodies_remaining=12)


def evolved_frames(generations=3):
    population = Population(GAParameters(population_size=6, elite_count=1), np.random.default_rng(9),
                            evaluator=launch_strength_fitness)
    frames = []
    population.run(generations, generation_callback=lambda p: frames.append(generation_frame(p)))
    return pd.concat(frames, ignore_index=True)


def test_generation_frame_columns():
    df = evolved_frames(2)
    assert len(df) == 12
    assert list(df.columns[:10]) == [
        "generation", "rank", "fitness", "rad_var", "turns", "tan_ratio",
        "energy_drift", "bodies_remaining", "error", "toroidal",
    ]
    assert set(GENE_NAMES) <= set(df.columns)
    assert (df["bodies_remaining"] == 12).all()
    assert df["rad_var"].isna().all()
    # Ranked best first within each generation
    for _, group in df.groupby("generation"):
        assert group["fitness"].is_monotonic_decreasing


def test_plot_evolution_builds_three_panels():
    df = evolved_frames(3)
    summary = summarize_generations(df)
    best = best_per_generation(df, GENE_NAMES)
    last = df[df["generation"] == df["generation"].max()]["fitness"]

    fig = plot_evolution(summary, best, last)
    try:
        assert len(fig.axes) == 3
        assert len(fig.axes[1].get_lines()) == len(GENE_NAMES) + 2
    finally:
        plt.close(fig)
