"""Population orchestration: the per-generation state machine."""

from __future__ import annotations

import math
import statistics
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from random import Random
from typing import TYPE_CHECKING, Any

from .crossover import CrossoverConfig
from .errors import ConfigError, PhaseError
from .genes import NodeGene, NodeType
from .genome import Genome
from .innovations import InnovationTracker
from .mutation import MutationConfig, Mutator
from .reproduction import (
    ReproductionConfig,
    ReproductionPlan,
    Reproducer,
    best_index,
    compute_offspring_allocation,
    selection_fitness,
)
from .species import Species, SpeciesConfig, SpeciesManager

if TYPE_CHECKING:
    from .config import NEATConfig
    from .evaluator import Evaluator

SNAPSHOT_VERSION = 1


class GenerationPhase(str, Enum):
    """Stages of one generation, in the order they run."""

    EVALUATING = "evaluating"
    SPECIATING = "speciating"
    SELECTING_PARENTS = "selecting_parents"
    REPRODUCING = "reproducing"
    READY = "ready"


_PREVIOUS_PHASE = {
    GenerationPhase.EVALUATING: GenerationPhase.READY,
    GenerationPhase.SPECIATING: GenerationPhase.EVALUATING,
    GenerationPhase.SELECTING_PARENTS: GenerationPhase.SPECIATING,
    GenerationPhase.REPRODUCING: GenerationPhase.SELECTING_PARENTS,
}


@dataclass(frozen=True, slots=True)
class PopulationConfig:
    """Configuration values governing population construction."""

    population_size: int
    num_inputs: int
    num_outputs: int
    initial_connectivity: str = "full"
    initial_weight_sd: float = 1.0
    output_activation: str = "sigmoid"

    def __post_init__(self) -> None:
        if self.population_size <= 0:
            msg = "population_size must be positive."
            raise ConfigError(msg)
        if self.num_inputs <= 0:
            msg = "num_inputs must be positive."
            raise ConfigError(msg)
        if self.num_outputs <= 0:
            msg = "num_outputs must be positive."
            raise ConfigError(msg)
        if self.initial_connectivity not in ("full", "none"):
            msg = "initial_connectivity must be 'full' or 'none'."
            raise ConfigError(msg)
        if self.initial_weight_sd <= 0.0:
            msg = "initial_weight_sd must be positive."
            raise ConfigError(msg)


@dataclass(frozen=True, slots=True)
class GenerationReport:
    """Summary of one generation, taken once parents have been selected."""

    generation: int
    population_size: int
    species_count: int
    best_fitness: float
    mean_fitness: float
    median_fitness: float
    best_genome: Genome
    species_sizes: dict[int, int] = field(default_factory=dict)
    removed_species: tuple[int, ...] = ()
    evaluation_failures: int = 0
    evaluation_errors: tuple[str, ...] = ()
    reseeded: bool = False


def create_initial_genomes(
    config: PopulationConfig,
    tracker: InnovationTracker,
    rng: Random,
) -> list[Genome]:
    """Build the first generation.

    Every genome has the same inputs, one bias node and the same outputs.
    With full connectivity each input and the bias feed every output; the
    markings are registered once so all genomes align and only the weights
    differ.
    """
    input_ids = list(range(config.num_inputs))
    bias_id = config.num_inputs
    output_ids = [bias_id + 1 + offset for offset in range(config.num_outputs)]

    nodes = {
        node_id: NodeGene(node_id, NodeType.INPUT, "identity") for node_id in input_ids
    }
    nodes[bias_id] = NodeGene(bias_id, NodeType.BIAS, "identity")
    for node_id in output_ids:
        nodes[node_id] = NodeGene(node_id, NodeType.OUTPUT, config.output_activation)

    pairs: list[tuple[int, int]] = []
    if config.initial_connectivity == "full":
        pairs = [(src, dst) for dst in output_ids for src in [*input_ids, bias_id]]
    markings = [tracker.register(src, dst) for src, dst in pairs]
    tracker.reserve_node_ids(output_ids[-1])

    genomes = []
    for _ in range(config.population_size):
        genome = Genome(nodes=dict(nodes), connections={})
        for (src, dst), innovation in zip(pairs, markings):
            genome.add_connection(
                src, dst, rng.gauss(0.0, config.initial_weight_sd), innovation
            )
        genomes.append(genome)
    return genomes


class Population:
    """Mutable state of an evolving population.

    One generation runs ``evaluate`` -> ``speciate`` -> ``select_parents`` ->
    ``reproduce``; :meth:`step` does all four. Calling a phase out of order
    raises :class:`PhaseError`. The innovation tracker is owned here and its
    dedup map is cleared after every reproduction.
    """

    def __init__(
        self,
        config: PopulationConfig,
        *,
        rng: Random,
        species_config: SpeciesConfig | None = None,
        reproduction_config: ReproductionConfig | None = None,
        mutation_config: MutationConfig | None = None,
        crossover_config: CrossoverConfig | None = None,
        tracker: InnovationTracker | None = None,
        genomes: Sequence[Genome] | None = None,
        generation: int = 0,
    ) -> None:
        self.config = config
        self.rng = rng
        self.species_manager = SpeciesManager(species_config or SpeciesConfig())
        self.reproduction_config = reproduction_config or ReproductionConfig()
        self.mutation_config = mutation_config or MutationConfig()
        self.crossover_config = crossover_config or CrossoverConfig()
        self.tracker = tracker if tracker is not None else InnovationTracker()
        self.mutator = Mutator(self.mutation_config, self.tracker)
        self.reproducer = Reproducer(
            self.reproduction_config, self.mutator, self.crossover_config
        )
        self.generation = generation
        if genomes is None:
            genomes = create_initial_genomes(config, self.tracker, rng)
        elif len(genomes) != config.population_size:
            msg = (
                f"Expected {config.population_size} genomes, received {len(genomes)}."
            )
            raise ConfigError(msg)
        self.genomes: list[Genome] = list(genomes)
        self.phase = GenerationPhase.READY
        self.fitnesses: list[float] = []
        self.species: tuple[Species, ...] = ()
        self.plan: ReproductionPlan | None = None
        self.best_genome: Genome | None = None
        self.evaluation_failures = 0
        self.evaluation_errors: tuple[str, ...] = ()

    @classmethod
    def from_config(cls, config: NEATConfig, rng: Random) -> Population:
        """Create a population with a fresh first generation."""
        return cls(
            config.population_config(),
            rng=rng,
            species_config=config.species_config(),
            reproduction_config=config.reproduction_config(),
            mutation_config=config.mutation_config(),
            crossover_config=config.crossover_config(),
        )

    @property
    def champion_fitness(self) -> float:
        if self.best_genome is None or self.best_genome.fitness is None:
            return float("-inf")
        return self.best_genome.fitness

    def evaluate(self, evaluator: Evaluator) -> list[float]:
        """Score every genome; fitness is stored on each genome."""
        self._enter(GenerationPhase.EVALUATING)
        results = evaluator(dict(enumerate(self.genomes)), self.rng)
        if set(results) != set(range(len(self.genomes))):
            msg = "Evaluator must return fitnesses for every genome."
            raise ValueError(msg)
        for index, genome in enumerate(self.genomes):
            genome.fitness = float(results[index])
        self.fitnesses = [genome.fitness for genome in self.genomes]

        stats = getattr(evaluator, "last_stats", None)
        self.evaluation_failures = getattr(stats, "failures", 0)
        self.evaluation_errors = tuple(
            str(error) for error in getattr(stats, "errors", ())
        )

        best = best_index(selection_fitness(self.fitnesses))
        if self.best_genome is None or self.fitnesses[best] > self.champion_fitness:
            self.best_genome = self.genomes[best].copy()
        return self.fitnesses

    def speciate(self) -> tuple[Species, ...]:
        """Assign genomes to species and update stagnation counters."""
        self._enter(GenerationPhase.SPECIATING)
        self.species = self.species_manager.speciate(self.genomes, self.generation)
        self.species_manager.adjust_threshold(self.generation, len(self.species))
        return self.species

    def select_parents(self) -> ReproductionPlan:
        """Share fitness, drop stagnant species and allocate offspring slots."""
        self._enter(GenerationPhase.SELECTING_PARENTS)
        plan = compute_offspring_allocation(
            self.species,
            selection_fitness(self.fitnesses),
            population_size=self.config.population_size,
            config=self.reproduction_config,
        )
        self.species_manager.remove(plan.excluded)
        self.species = self.species_manager.species()
        self.plan = plan
        return plan

    def reproduce(self) -> list[Genome]:
        """Replace the genomes with the next generation."""
        self._enter(GenerationPhase.REPRODUCING)
        plan = self.plan
        if plan is None:
            msg = "No reproduction plan; select parents first."
            raise PhaseError(msg)
        self.genomes = self.reproducer.reproduce(
            self.genomes,
            selection_fitness(self.fitnesses),
            plan,
            self.config.population_size,
            self.rng,
        )
        self.tracker.reset()
        self.fitnesses = []
        self.plan = None
        self.generation += 1
        self.phase = GenerationPhase.READY
        return self.genomes

    def step(self, evaluator: Evaluator) -> GenerationReport:
        """Run one full generation and report on it."""
        self.evaluate(evaluator)
        self.speciate()
        plan = self.select_parents()
        report = self.report(plan)
        self.reproduce()
        return report

    def report(self, plan: ReproductionPlan) -> GenerationReport:
        """Summarize the evaluated generation."""
        scores = [value for value in self.fitnesses if math.isfinite(value)]
        if not scores:
            scores = selection_fitness(self.fitnesses)
        return GenerationReport(
            generation=self.generation,
            population_size=len(self.genomes),
            species_count=len(self.species),
            best_fitness=self.fitnesses[plan.elite_index],
            mean_fitness=statistics.fmean(scores),
            median_fitness=statistics.median(scores),
            best_genome=self.genomes[plan.elite_index].copy(),
            species_sizes={species.id: len(species) for species in self.species},
            removed_species=plan.excluded,
            evaluation_failures=self.evaluation_failures,
            evaluation_errors=self.evaluation_errors,
            reseeded=plan.reseed,
        )

    def to_snapshot(self) -> dict[str, Any]:
        """Plain-data record of the population between generations."""
        if self.phase is not GenerationPhase.READY:
            msg = "Snapshots can only be taken between generations."
            raise PhaseError(msg)
        return {
            "version": SNAPSHOT_VERSION,
            "generation": self.generation,
            "genomes": [genome.to_dict() for genome in self.genomes],
            "species": self.species_manager.to_dict(),
            "innovations": self.tracker.to_snapshot().to_dict(),
            "best_genome": (
                None if self.best_genome is None else self.best_genome.to_dict()
            ),
        }

    @classmethod
    def from_snapshot(
        cls,
        snapshot: Mapping[str, Any],
        config: PopulationConfig,
        *,
        rng: Random,
        species_config: SpeciesConfig | None = None,
        reproduction_config: ReproductionConfig | None = None,
        mutation_config: MutationConfig | None = None,
        crossover_config: CrossoverConfig | None = None,
    ) -> Population:
        """Rebuild a population from :meth:`to_snapshot` output."""
        version = snapshot.get("version", SNAPSHOT_VERSION)
        if version != SNAPSHOT_VERSION:
            msg = f"Unsupported snapshot version: {version}"
            raise ValueError(msg)
        population = cls(
            config,
            rng=rng,
            species_config=species_config,
            reproduction_config=reproduction_config,
            mutation_config=mutation_config,
            crossover_config=crossover_config,
            tracker=InnovationTracker.from_snapshot(snapshot["innovations"]),
            genomes=[Genome.from_dict(raw) for raw in snapshot["genomes"]],
            generation=int(snapshot["generation"]),
        )
        population.species_manager.restore(snapshot.get("species", {}))
        population.species = population.species_manager.species()
        best = snapshot.get("best_genome")
        if best is not None:
            population.best_genome = Genome.from_dict(best)
        return population

    def _enter(self, phase: GenerationPhase) -> None:
        expected = _PREVIOUS_PHASE[phase]
        if self.phase is not expected:
            msg = (
                f"Cannot run {phase.value} after {self.phase.value}; "
                f"expected {expected.value} first."
            )
            raise PhaseError(msg)
        self.phase = phase


__all__ = [
    "GenerationPhase",
    "GenerationReport",
    "Population",
    "PopulationConfig",
    "create_initial_genomes",
]
