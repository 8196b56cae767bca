"""Offspring allocation and selection utilities for NEAT reproduction."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from random import Random

from .crossover import CrossoverConfig, crossover
from .errors import ConfigError
from .genome import Genome
from .mutation import Mutator
from .species import Species

MIN_WEIGHT_FRACTION = 1e-3


@dataclass(frozen=True, slots=True)
class ReproductionConfig:
    """Configuration controlling offspring allocation and selection.

    Attributes:
        elitism: Extra top members copied unchanged per species, on top of the
            population-wide champion that is always kept.
        survival_threshold: Fraction of each species (best first) eligible to
            become parents.
        max_stagnation: Species stagnant for more generations than this are
            dropped unless they hold the champion.
        interspecies_mating_rate: Probability the second parent comes from a
            different species.
        crossover_rate: Probability an offspring is produced by crossover
            rather than by a mutated copy of one parent.
    """

    elitism: int = 0
    survival_threshold: float = 1.0
    max_stagnation: int = 15
    interspecies_mating_rate: float = 0.001
    crossover_rate: float = 0.75

    def __post_init__(self) -> None:
        if self.elitism < 0:
            msg = "elitism must be >= 0."
            raise ConfigError(msg)
        if not 0.0 < self.survival_threshold <= 1.0:
            msg = "survival_threshold must be in (0, 1]."
            raise ConfigError(msg)
        if self.max_stagnation < 0:
            msg = "max_stagnation must be >= 0."
            raise ConfigError(msg)
        if not 0.0 <= self.interspecies_mating_rate <= 1.0:
            msg = "interspecies_mating_rate must be in [0, 1]."
            raise ConfigError(msg)
        if not 0.0 <= self.crossover_rate <= 1.0:
            msg = "crossover_rate must be in [0, 1]."
            raise ConfigError(msg)


@dataclass(slots=True)
class ReproductionPlan:
    """Result of distributing offspring among species.

    ``offspring`` counts exclude the champion at ``elite_index``; together
    they always sum to ``population_size - 1``. When ``reseed`` is set every
    species was stagnant and the next generation is built from the champion
    alone.
    """

    elite_index: int
    offspring: dict[int, int]
    elites: dict[int, tuple[int, ...]]
    selection_pool: dict[int, tuple[int, ...]]
    adjusted_fitness: dict[int, float]
    excluded: tuple[int, ...]
    reseed: bool = False


def selection_fitness(values: Sequence[float | None]) -> list[float]:
    """Map raw fitness values onto finite numbers usable for selection.

    Missing, NaN and negative-infinite scores (failed evaluations) become a
    non-positive sentinel at least one spread below the lowest finite score,
    so they rank under every real score. Positive infinity becomes the
    highest finite score.
    """
    finite = [value for value in values if value is not None and math.isfinite(value)]
    lowest = min(finite, default=0.0)
    ceiling = max(finite, default=0.0)
    floor = min(lowest, 0.0) - max(1.0, ceiling - lowest)
    result = []
    for value in values:
        if value is None or math.isnan(value) or value == float("-inf"):
            result.append(floor)
        elif value == float("inf"):
            result.append(ceiling)
        else:
            result.append(value)
    return result


def best_index(fitnesses: Sequence[float]) -> int:
    """Index of the fittest genome; the lowest index wins ties."""
    if not fitnesses:
        msg = "At least one genome is required."
        raise ValueError(msg)
    best = 0
    for index, value in enumerate(fitnesses):
        if value > fitnesses[best]:
            best = index
    return best


def compute_offspring_allocation(
    species_list: Sequence[Species],
    fitnesses: Sequence[float],
    population_size: int,
    config: ReproductionConfig,
) -> ReproductionPlan:
    """Allocate offspring among species and determine elites and parent pools.

    Args:
        species_list: Species of the current generation, in creation order.
        fitnesses: Finite fitness per genome index (see :func:`selection_fitness`).
        population_size: Size of the next generation.
        config: Reproduction settings.
    """
    if population_size <= 0:
        msg = "population_size must be positive."
        raise ValueError(msg)
    if not species_list:
        msg = "At least one species is required."
        raise ValueError(msg)

    champion = best_index(fitnesses)
    stagnant = [
        species for species in species_list if species.stagnation > config.max_stagnation
    ]
    excluded = tuple(
        species.id for species in stagnant if champion not in species.members
    )
    eligible = [species for species in species_list if species.id not in excluded]

    adjusted_fitness: dict[int, float] = {}
    for species in eligible:
        if not species.members:
            msg = f"Species {species.id} has no members."
            raise ValueError(msg)
        total = sum(fitnesses[member] for member in species.members)
        adjusted_fitness[species.id] = total / len(species.members)
        species.adjusted_fitness = adjusted_fitness[species.id]

    if len(stagnant) == len(species_list):
        return ReproductionPlan(
            elite_index=champion,
            offspring={},
            elites={},
            selection_pool={},
            adjusted_fitness=adjusted_fitness,
            excluded=excluded,
            reseed=True,
        )

    slots = population_size - 1
    allocations = _allocate_slots(adjusted_fitness, slots)

    elites: dict[int, tuple[int, ...]] = {}
    selection_pool: dict[int, tuple[int, ...]] = {}
    for species in eligible:
        ranked = sorted(
            species.members,
            key=lambda member: (-fitnesses[member], member),
        )
        elite_count = min(config.elitism, allocations[species.id])
        elites[species.id] = tuple(
            member for member in ranked if member != champion
        )[:elite_count]
        survivor_count = max(1, math.ceil(len(ranked) * config.survival_threshold))
        selection_pool[species.id] = tuple(ranked[:survivor_count])

    if sum(allocations.values()) != slots:
        msg = "Offspring allocation does not sum to the population size."
        raise RuntimeError(msg)

    return ReproductionPlan(
        elite_index=champion,
        offspring=allocations,
        elites=elites,
        selection_pool=selection_pool,
        adjusted_fitness=adjusted_fitness,
        excluded=excluded,
    )


def _allocate_slots(adjusted_fitness: dict[int, float], slots: int) -> dict[int, int]:
    """Round each species' share of ``slots``; the remainder goes to the best."""
    species_ids = list(adjusted_fitness)
    weights = _selection_weights([adjusted_fitness[sid] for sid in species_ids])
    total = sum(weights)
    shares = {
        species_id: weight / total for species_id, weight in zip(species_ids, weights)
    }

    allocations = {
        species_id: int(math.floor(share * slots + 0.5))
        for species_id, share in shares.items()
    }
    ordering = sorted(
        adjusted_fitness,
        key=lambda species_id: (-adjusted_fitness[species_id], species_id),
    )
    remainder = slots - sum(allocations.values())
    if remainder > 0:
        allocations[ordering[0]] += remainder
    for species_id in ordering:
        if remainder >= 0:
            break
        take = min(allocations[species_id], -remainder)
        allocations[species_id] -= take
        remainder += take
    return allocations


def select_parent(
    pool: Sequence[int],
    fitnesses: Sequence[float],
    rng: Random,
) -> int:
    """Fitness-proportional choice of one genome index from ``pool``."""
    if len(pool) == 1:
        return pool[0]
    weights = _selection_weights([fitnesses[member] for member in pool])
    return rng.choices(pool, weights=weights, k=1)[0]


def _selection_weights(scores: Sequence[float]) -> list[float]:
    """Strictly positive selection weights preserving the order of ``scores``.

    Positive scores are used as-is. Otherwise the scores are shifted so the
    lowest one weighs a small fraction of the spread.
    """
    lowest = min(scores)
    if lowest > 0.0:
        return list(scores)
    spread = max(scores) - lowest
    floor = MIN_WEIGHT_FRACTION * (spread if spread > 0.0 else 1.0)
    return [score - lowest + floor for score in scores]


class Reproducer:
    """Builds the next generation from a :class:`ReproductionPlan`."""

    def __init__(
        self,
        config: ReproductionConfig,
        mutator: Mutator,
        crossover_config: CrossoverConfig | None = None,
    ) -> None:
        self.config = config
        self.mutator = mutator
        self.crossover_config = crossover_config or CrossoverConfig()

    def reproduce(
        self,
        genomes: Sequence[Genome],
        fitnesses: Sequence[float],
        plan: ReproductionPlan,
        population_size: int,
        rng: Random,
    ) -> list[Genome]:
        """Return exactly ``population_size`` genomes, champion first."""
        champion = genomes[plan.elite_index]
        offspring: list[Genome] = [champion.offspring_copy()]

        if plan.reseed:
            while len(offspring) < population_size:
                child = champion.offspring_copy()
                self.mutator.mutate(child, rng)
                offspring.append(child)
            return offspring

        species_ids = sorted(plan.offspring)
        for species_id in species_ids:
            quota = plan.offspring[species_id]
            elites = plan.elites.get(species_id, ())
            for member in elites:
                offspring.append(genomes[member].offspring_copy())
            pool = plan.selection_pool[species_id]
            others = [other for other in species_ids if other != species_id]
            for _ in range(quota - len(elites)):
                offspring.append(
                    self._breed(genomes, fitnesses, plan, pool, others, rng)
                )

        if len(offspring) != population_size:
            msg = (
                f"Reproduction produced {len(offspring)} genomes, "
                f"expected {population_size}."
            )
            raise RuntimeError(msg)
        return offspring

    def _breed(
        self,
        genomes: Sequence[Genome],
        fitnesses: Sequence[float],
        plan: ReproductionPlan,
        pool: Sequence[int],
        other_species: Sequence[int],
        rng: Random,
    ) -> Genome:
        first = select_parent(pool, fitnesses, rng)
        mate_pool = pool
        if other_species and rng.random() < self.config.interspecies_mating_rate:
            mate_pool = plan.selection_pool[rng.choice(other_species)]

        if (len(mate_pool) == 1 and mate_pool is pool) or (
            rng.random() >= self.config.crossover_rate
        ):
            child = genomes[first].offspring_copy()
        else:
            second = select_parent(mate_pool, fitnesses, rng)
            child = crossover(
                genomes[first],
                genomes[second],
                rng=rng,
                fitness_a=fitnesses[first],
                fitness_b=fitnesses[second],
                config=self.crossover_config,
                mode=self.mutator.mode,
            )
        self.mutator.mutate(child, rng)
        return child


__all__ = [
    "ReproductionConfig",
    "ReproductionPlan",
    "Reproducer",
    "best_index",
    "compute_offspring_allocation",
    "select_parent",
    "selection_fitness",
]
