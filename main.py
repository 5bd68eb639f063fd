import os
import numpy as np
import pandas as pd

import orbitlab.config as cfg
from orbitlab.fitness import FitnessSettings
from orbitlab.ga import GAParameters, Population
from orbitlab.genome import GENE_NAMES
from orbitlab.run_metadata import make_run_dir, save_run_metadata, write_json


def generation_frame(population: Population) -> pd.DataFrame:
    """
    One row per genome of the (evaluated, sorted) population:
    generation, rank, fitness, the main fitness details and every gene.
    """
    rows = []
    for rank, genome in enumerate(population.genomes):
        details = genome.fitness_details or {}
        metrics = details.get("orbit_metrics") or {}
        row = {
            "generation": population.generation,
            "rank": rank,
            "fitness": float(genome.fitness if genome.fitness is not None else 0.0),
            "rad_var": float(metrics.get("rad_var", np.nan)),
            "turns": float(metrics.get("turns", np.nan)),
            "tan_ratio": float(metrics.get("tan_ratio", np.nan)),
            "energy_drift": float(details.get("energy_drift", np.nan)),
            "bodies_remaining": int(details.get("bodies_remaining", 0)),
            "error": details.get("error") or "",
            "toroidal": bool(genome.toroidal),
        }
        row.update(genome.genes())
        rows.append(row)
    return pd.DataFrame(rows, columns=[
        "generation", "rank", "fitness", "rad_var", "turns", "tan_ratio",
        "energy_drift", "bodies_remaining", "error", "toroidal", *GENE_NAMES,
    ])


def main() -> None:
    """
    Entry point for the parameter search.

    Pipeline:
      1) Build a random population of genomes
      2) Each generation: evaluate every genome on the standardized scenario,
         sort, write the generation to Parquet, then evolve
      3) Export the best genome (genes + decoded configuration) as JSON

    Output files:
      - OUTPUT_DIR/generation_00000.parquet, generation_00001.parquet, ...
      - OUTPUT_DIR/best_genome.json
      - outputs/evolve_<timestamp>/ with run metadata
    """
    os.makedirs(cfg.OUTPUT_DIR, exist_ok=True)

    print("--- STARTING EVOLUTION ---")
    print(f"Population: {cfg.POPULATION_SIZE} | Elites: {cfg.ELITE_COUNT} | Generations: {cfg.GENERATIONS}")
    print(f"Mutation: rate={cfg.MUTATION_RATE} strength={cfg.MUTATION_STRENGTH} | Tournament: {cfg.TOURNAMENT_SIZE}")
    print(f"Scenario: {cfg.FITNESS_DURATION}s x{cfg.FITNESS_TIME_ACCELERATION} | Workers: {cfg.WORKERS or 1}")

    # Reproducible RNG when cfg.SEED is provided; otherwise uses system entropy.
    rng = np.random.default_rng(cfg.SEED)

    parameters = GAParameters(
        population_size=cfg.POPULATION_SIZE,
        elite_count=cfg.ELITE_COUNT,
        mutation_rate=cfg.MUTATION_RATE,
        mutation_strength=cfg.MUTATION_STRENGTH,
        tournament_size=cfg.TOURNAMENT_SIZE,
        enable_range_expansion=cfg.ENABLE_RANGE_EXPANSION,
        boundary_proximity=cfg.BOUNDARY_PROXIMITY,
        boundary_generations=cfg.BOUNDARY_GENERATIONS,
    )
    settings = FitnessSettings(
        duration=cfg.FITNESS_DURATION,
        tick=cfg.FITNESS_TICK,
        time_acceleration=cfg.FITNESS_TIME_ACCELERATION,
        samples=cfg.FITNESS_SAMPLES,
    )
    population = Population(parameters, rng=rng, settings=settings, workers=cfg.WORKERS,
                            toroidal=cfg.WRAP_BOUNDARY)

    def on_generation(pop: Population) -> None:
        df_gen = generation_frame(pop)
        file_path = os.path.join(cfg.OUTPUT_DIR, f"generation_{pop.generation:05d}.parquet")
        try:
            df_gen.to_parquet(file_path, engine="pyarrow", compression="snappy")
        except ImportError as e:
            raise ImportError(
                "Failed to save Parquet file. Please install 'pyarrow' (pip install pyarrow)."
            ) from e

        record = pop.history[-1]
        failed = int((df_gen["error"] != "").sum())
        print(
            f"Generation {pop.generation + 1}/{cfg.GENERATIONS} saved. "
            f"best={record['best']:.4f} mean={record['mean']:.4f}"
            + (f" ({failed} failed evaluations)" if failed else "")
        )

    population.run(cfg.GENERATIONS, generation_callback=on_generation)

    best = population.export_best()
    best_path = os.path.join(cfg.OUTPUT_DIR, "best_genome.json")
    write_json(best_path, best)
    print(f"Best fitness: {best['fitness']:.4f} -> {best_path}")

    run_dir = make_run_dir(base_dir="outputs", prefix="evolve")
    dirty = save_run_metadata(run_dir, cfg, {
        "run_type": "evolution",
        "output_dir": cfg.OUTPUT_DIR,
        "generations": population.generation + 1,
        "history": population.history,
        "final_bounds": population.bounds,
        "best": best,
    })
    if dirty:
        print("WARNING: working tree has uncommitted changes.")
        print("         Commit hash may not fully describe the code used.")

    print("--- FINISHED ---")


if __name__ == "__main__":
    main()
