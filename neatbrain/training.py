"""Run loops: in-memory ``evolve`` and the file-backed ``run_training``."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from random import Random
from time import perf_counter

import yaml

from .config import NEATConfig, RunConfig
from .evaluator import Evaluator, FitnessFunction, ParallelEvaluator, SyncEvaluator
from .metrics import MetricsRow, MetricsWriter
from .persistence import (
    TrainingCheckpoint,
    load_checkpoint,
    save_checkpoint,
    save_genome,
)
from .population import GenerationReport, Population
from .reporters import EventLogger

GenerationHook = Callable[[GenerationReport, Population], "bool | None"]
"""Called after every generation; returning ``True`` stops the run."""


@dataclass(frozen=True, slots=True)
class RunArtifacts:
    """Resolved file locations used for a training run."""

    root: Path
    metrics: Path
    events: Path
    checkpoint: Path
    champion: Path
    config: Path


def run_generation(
    population: Population,
    evaluator: Evaluator,
) -> tuple[GenerationReport, float]:
    """Advance one generation, returning its report and evaluation time."""
    start_time = perf_counter()
    population.evaluate(evaluator)
    eval_time = perf_counter() - start_time
    population.speciate()
    report = population.report(population.select_parents())
    population.reproduce()
    return report, eval_time


def _should_stop(
    report: GenerationReport,
    population: Population,
    hooks: Iterable[GenerationHook],
    fitness_threshold: float | None,
) -> bool:
    stop = False
    for hook in hooks:
        if hook(report, population):
            stop = True
    if fitness_threshold is not None and report.best_fitness >= fitness_threshold:
        stop = True
    return stop


def evolve(
    population: Population,
    evaluator: Evaluator,
    *,
    max_generations: int,
    fitness_threshold: float | None = None,
    hooks: Iterable[GenerationHook] = (),
) -> list[GenerationReport]:
    """Run up to ``max_generations`` generations in memory.

    Stops early once a hook returns ``True`` or the best fitness of a
    generation reaches ``fitness_threshold``.
    """
    hooks = tuple(hooks)
    reports: list[GenerationReport] = []
    for _ in range(max_generations):
        report, _eval_time = run_generation(population, evaluator)
        reports.append(report)
        if _should_stop(report, population, hooks, fitness_threshold):
            break
    return reports


def _allocate_run_dir(output_root: Path) -> Path:
    output_root.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    candidate = output_root / timestamp
    suffix = 1
    while candidate.exists():
        candidate = output_root / f"{timestamp}_{suffix:02d}"
        suffix += 1
    candidate.mkdir(parents=True, exist_ok=False)
    return candidate


def _build_artifacts(run_dir: Path) -> RunArtifacts:
    return RunArtifacts(
        root=run_dir,
        metrics=run_dir / "metrics.csv",
        events=run_dir / "events.log",
        checkpoint=run_dir / "neat_state.pkl",
        champion=run_dir / "champion.yml",
        config=run_dir / "config.yml",
    )


def _run_snapshot(run_config: RunConfig) -> dict[str, object]:
    return {
        "neat_config": str(run_config.neat_config),
        "output_dir": str(run_config.output_dir),
        "workers": run_config.workers,
        "timeout_s": run_config.timeout_s,
        "resume": str(run_config.resume) if run_config.resume else None,
        "save_every": run_config.save_every,
    }


def _write_config_snapshot(
    artifacts: RunArtifacts,
    run_config: RunConfig,
    neat_config: NEATConfig,
) -> None:
    if artifacts.config.exists():
        return
    snapshot = {
        "run": _run_snapshot(run_config),
        "neat": asdict(neat_config),
    }
    with artifacts.config.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(snapshot, handle, sort_keys=True)


def _create_evaluator(
    run_config: RunConfig,
    neat_config: NEATConfig,
    fitness: FitnessFunction,
) -> SyncEvaluator | ParallelEvaluator:
    evaluation_config = neat_config.evaluation_config()
    if run_config.workers > 1:
        return ParallelEvaluator(
            fitness,
            workers=run_config.workers,
            timeout_s=run_config.timeout_s,
            config=evaluation_config,
        )
    return SyncEvaluator(fitness, config=evaluation_config)


def _normalise_checkpoint_path(path: Path) -> Path:
    candidate = Path(path)
    if candidate.is_dir():
        candidate = candidate / "neat_state.pkl"
    if not candidate.exists():
        msg = f"Checkpoint file not found: {candidate}"
        raise FileNotFoundError(msg)
    return candidate


def _initialise_run(
    run_config: RunConfig,
    neat_config: NEATConfig,
) -> tuple[RunArtifacts, Population]:
    if run_config.resume:
        checkpoint_path = _normalise_checkpoint_path(run_config.resume)
        checkpoint = load_checkpoint(checkpoint_path)
        population = Population.from_snapshot(
            checkpoint.population_snapshot,
            neat_config.population_config(),
            rng=checkpoint.rng(),
            species_config=neat_config.species_config(),
            reproduction_config=neat_config.reproduction_config(),
            mutation_config=neat_config.mutation_config(),
            crossover_config=neat_config.crossover_config(),
        )
        run_dir = checkpoint_path.parent
    else:
        run_dir = _allocate_run_dir(run_config.output_dir)
        population = Population.from_config(neat_config, Random(neat_config.seed))

    artifacts = _build_artifacts(run_dir)
    _write_config_snapshot(artifacts, run_config, neat_config)
    return artifacts, population


def _should_save(generation: int, interval: int | None) -> bool:
    if interval is None or interval <= 0:
        return False
    return generation % interval == 0


def run_training(
    run_config: RunConfig,
    neat_config: NEATConfig,
    fitness: FitnessFunction,
    *,
    hooks: Iterable[GenerationHook] = (),
) -> Population:
    """Evolve with metrics, an event log, champion files and checkpoints.

    Returns:
        The population after the last completed generation.
    """
    hooks = tuple(hooks)
    artifacts, population = _initialise_run(run_config, neat_config)
    evaluator = _create_evaluator(run_config, neat_config, fitness)

    if run_config.resume:
        print(f"[train] resuming from checkpoint: {artifacts.checkpoint}")
    else:
        print(f"[train] run directory: {artifacts.root}")

    with MetricsWriter(artifacts.metrics) as metrics_writer, EventLogger(
        artifacts.events
    ) as logger:
        mode = "resumed" if run_config.resume else "started"
        logger.log(f"Training {mode} at {artifacts.root}")
        logger.log(f"Config -> neat={run_config.neat_config}")

        while population.generation < neat_config.max_generations:
            champion_before = population.champion_fitness
            report, eval_time = run_generation(population, evaluator)

            best_genome = population.best_genome
            if best_genome is not None and population.champion_fitness > champion_before:
                save_genome(artifacts.champion, best_genome)
                logger.log(
                    f"New champion at generation {report.generation} "
                    f"(fitness={population.champion_fitness:.3f})."
                )

            metrics_writer.append(MetricsRow.from_report(report, eval_time))
            logger.log_generation(report)
            print(
                f"Generation {report.generation}: "
                f"best fitness {report.best_fitness:.2f}"
            )

            stop = _should_stop(
                report, population, hooks, neat_config.fitness_threshold
            )
            if _should_save(population.generation, run_config.save_every) and not stop:
                save_checkpoint(
                    artifacts.checkpoint, TrainingCheckpoint.capture(population)
                )
                logger.log(f"Checkpoint saved at generation {population.generation}.")
            if stop:
                logger.log(f"Stopping after generation {report.generation}.")
                print("Stop condition reached, stopping training.")
                break

        save_checkpoint(artifacts.checkpoint, TrainingCheckpoint.capture(population))
        logger.log("Final checkpoint saved.")

    return population


__all__ = [
    "GenerationHook",
    "RunArtifacts",
    "evolve",
    "run_generation",
    "run_training",
]
