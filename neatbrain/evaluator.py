"""Evaluators that score genomes with a caller-supplied fitness function."""

from __future__ import annotations

import multiprocessing
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from random import Random
from typing import Any

from .errors import ConfigError, EvaluationError
from .genome import Genome
from .network import Network, TopologyMode, build_network

FitnessFunction = Callable[..., float]
"""``fitness(network)`` or, with ``pass_rng``, ``fitness(network, rng)``."""


@dataclass(frozen=True, slots=True)
class EvaluationConfig:
    """Configuration shared by evaluators.

    Attributes:
        mode: Phenotype kind built for each genome.
        time_step: CTRNN Euler step size.
        steps_per_activation: CTRNN steps per ``activate`` call.
        num_inputs: Declared input count checked against every network.
        num_outputs: Declared output count checked against every network.
        error_fitness: Fitness assigned when the fitness function raises.
        seed: Base seed for per-genome random streams; drawn from the
            population generator when unset.
        pass_rng: Hand each fitness call its own seeded ``random.Random``.
    """

    mode: TopologyMode = TopologyMode.FEED_FORWARD
    time_step: float = 0.1
    steps_per_activation: int = 10
    num_inputs: int | None = None
    num_outputs: int | None = None
    error_fitness: float = float("-inf")
    seed: int | None = None
    pass_rng: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "mode", TopologyMode.coerce(self.mode))
        if self.time_step <= 0.0:
            msg = "time_step must be positive."
            raise ConfigError(msg)
        if self.steps_per_activation <= 0:
            msg = "steps_per_activation must be positive."
            raise ConfigError(msg)
        if self.num_inputs is not None and self.num_inputs <= 0:
            msg = "num_inputs must be positive when provided."
            raise ConfigError(msg)
        if self.num_outputs is not None and self.num_outputs <= 0:
            msg = "num_outputs must be positive when provided."
            raise ConfigError(msg)

    def build(self, genome: Genome) -> Network:
        """Build and validate the phenotype for ``genome``."""
        network = build_network(
            genome,
            self.mode,
            time_step=self.time_step,
            steps_per_activation=self.steps_per_activation,
        )
        if self.num_inputs is not None and self.num_outputs is not None:
            network.check_io(self.num_inputs, self.num_outputs)
        return network


@dataclass(slots=True)
class EvaluationStats:
    """Aggregate statistics from the most recent evaluation pass."""

    evaluated: int = 0
    failures: int = 0
    errors: list[EvaluationError] = field(default_factory=list)

    def accumulate(self, *, error: EvaluationError | None = None) -> None:
        """Count one evaluated genome, recording its failure if any."""
        self.evaluated += 1
        if error is not None:
            self.failures += 1
            self.errors.append(error)


def genome_seed(base_seed: int, genome_id: int) -> int:
    """Seed of the independent random stream used for one genome."""
    return (base_seed + genome_id * 10_007) % (2**32)


def _score_genome(
    genome_id: int,
    genome: Genome,
    fitness: FitnessFunction,
    config: EvaluationConfig,
    base_seed: int,
) -> tuple[float, BaseException | None]:
    network = config.build(genome)
    try:
        if config.pass_rng:
            value = fitness(network, Random(genome_seed(base_seed, genome_id)))
        else:
            value = fitness(network)
        return float(value), None
    except Exception as error:
        return config.error_fitness, error


def _base_seed(config: EvaluationConfig, rng: Random) -> int:
    return config.seed if config.seed is not None else rng.getrandbits(32)


class SyncEvaluator:
    """Single-process evaluator that scores genomes sequentially."""

    def __init__(
        self,
        fitness: FitnessFunction,
        *,
        config: EvaluationConfig | None = None,
    ) -> None:
        self.fitness = fitness
        self.config = config or EvaluationConfig()
        self.last_stats = EvaluationStats()

    def __call__(self, genomes: Mapping[int, Genome], rng: Random) -> dict[int, float]:
        if not genomes:
            self.last_stats = EvaluationStats()
            return {}

        base_seed = _base_seed(self.config, rng)
        results: dict[int, float] = {}
        stats = EvaluationStats()

        for genome_id, genome in sorted(genomes.items(), key=lambda item: item[0]):
            score, cause = _score_genome(
                genome_id, genome, self.fitness, self.config, base_seed
            )
            results[genome_id] = score
            stats.accumulate(
                error=None if cause is None else EvaluationError(genome_id, cause)
            )

        self.last_stats = stats
        return results


def _worker_loop(
    worker_id: int,
    fitness: FitnessFunction,
    config: EvaluationConfig,
    base_seed: int,
    task_queue: multiprocessing.queues.Queue[Any],
    result_queue: multiprocessing.queues.Queue[Any],
) -> None:
    try:
        while True:
            task = task_queue.get()
            if task is None:
                break
            genome_id, genome = task
            score, cause = _score_genome(genome_id, genome, fitness, config, base_seed)
            failure = None if cause is None else repr(cause)
            result_queue.put((genome_id, score, failure))
    except Exception as error:  # pragma: no cover - propagated to parent
        result_queue.put(("__error__", worker_id, repr(error)))
        raise


class ParallelEvaluator:
    """Multiprocessing evaluator for concurrent genome scoring.

    Workers are spawned per call and fed through a task queue. The fitness
    function must be picklable (defined at module level).
    """

    def __init__(
        self,
        fitness: FitnessFunction,
        *,
        workers: int,
        timeout_s: float | None = None,
        config: EvaluationConfig | None = None,
    ) -> None:
        if workers <= 0:
            msg = "workers must be positive."
            raise ConfigError(msg)
        if timeout_s is not None and timeout_s <= 0.0:
            msg = "timeout_s must be positive when provided."
            raise ConfigError(msg)

        self.fitness = fitness
        self.workers = workers
        self.timeout_s = timeout_s
        self.config = config or EvaluationConfig()
        self.last_stats = EvaluationStats()

    def __call__(self, genomes: Mapping[int, Genome], rng: Random) -> dict[int, float]:
        if not genomes:
            self.last_stats = EvaluationStats()
            return {}

        base_seed = _base_seed(self.config, rng)

        ctx = multiprocessing.get_context("spawn")
        task_queue: multiprocessing.queues.Queue[Any] = ctx.Queue()
        result_queue: multiprocessing.queues.Queue[Any] = ctx.Queue()

        worker_count = min(self.workers, len(genomes))
        processes = [
            ctx.Process(
                target=_worker_loop,
                args=(
                    worker_id,
                    self.fitness,
                    self.config,
                    base_seed,
                    task_queue,
                    result_queue,
                ),
            )
            for worker_id in range(worker_count)
        ]

        for proc in processes:
            proc.start()

        success = False
        try:
            items = sorted(genomes.items(), key=lambda item: item[0])
            for genome_id, genome in items:
                task_queue.put((genome_id, genome))

            for _ in processes:
                task_queue.put(None)

            scores: dict[int, float] = {}
            failures: dict[int, str] = {}
            remaining = len(items)
            while remaining:
                if self.timeout_s is None:
                    genome_id, score, failure = result_queue.get()
                else:
                    genome_id, score, failure = result_queue.get(timeout=self.timeout_s)
                if genome_id == "__error__":
                    msg = f"Worker {score} failed during evaluation: {failure}"
                    raise RuntimeError(msg)
                scores[genome_id] = score
                if failure is not None:
                    failures[genome_id] = failure
                remaining -= 1

            results: dict[int, float] = {}
            stats = EvaluationStats()
            for genome_id, _genome in items:
                results[genome_id] = scores[genome_id]
                error = None
                if genome_id in failures:
                    error = EvaluationError(genome_id, RuntimeError(failures[genome_id]))
                stats.accumulate(error=error)

            success = True
            self.last_stats = stats
            return results
        finally:
            for proc in processes:
                if not success:
                    proc.terminate()
                proc.join()
                if success and proc.exitcode not in (0, None):
                    raise RuntimeError(
                        f"Worker process exited with code {proc.exitcode}"
                    )


Evaluator = Callable[[Mapping[int, Genome], Random], Mapping[int, float]]


__all__ = [
    "EvaluationConfig",
    "EvaluationStats",
    "Evaluator",
    "FitnessFunction",
    "ParallelEvaluator",
    "SyncEvaluator",
    "genome_seed",
]
