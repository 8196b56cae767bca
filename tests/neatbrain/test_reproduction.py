from __future__ import annotations

import math
from random import Random

import pytest
from neatbrain.errors import ConfigError
from neatbrain.genes import NodeGene, NodeType
from neatbrain.genome import Genome
from neatbrain.innovations import InnovationTracker
from neatbrain.mutation import MutationConfig, Mutator
from neatbrain.reproduction import (
    ReproductionConfig,
    Reproducer,
    best_index,
    compute_offspring_allocation,
    select_parent,
    selection_fitness,
)
from neatbrain.species import Species


def example_genome(weight: float = 0.5) -> Genome:
    nodes = {
        0: NodeGene(0, NodeType.INPUT, "identity"),
        1: NodeGene(1, NodeType.OUTPUT, "identity"),
    }
    genome = Genome(nodes=nodes, connections={})
    genome.add_connection(0, 1, weight, innovation=0)
    return genome


def make_species(species_id: int, members: list[int], *, stagnation: int = 0) -> Species:
    return Species(
        id=species_id,
        representative=example_genome(),
        created_generation=0,
        members=list(members),
        stagnation=stagnation,
    )


def quiet_mutator() -> Mutator:
    config = MutationConfig(
        weight_mutation_rate=0.0,
        add_connection_rate=0.0,
        add_node_rate=0.0,
        toggle_enable_rate=0.0,
    )
    return Mutator(config, InnovationTracker(next_innovation=1, next_node_id=2))


def test_offspring_allocation_is_proportional_to_adjusted_fitness() -> None:
    species_a = make_species(0, [0, 1])
    species_b = make_species(1, [2, 3])
    fitnesses = [3.0, 3.0, 1.0, 1.0]
    config = ReproductionConfig(elitism=1, survival_threshold=0.5)

    plan = compute_offspring_allocation(
        [species_a, species_b], fitnesses, population_size=9, config=config
    )

    assert plan.elite_index == 0
    assert plan.offspring == {0: 6, 1: 2}
    assert plan.adjusted_fitness == {0: pytest.approx(3.0), 1: pytest.approx(1.0)}
    assert species_a.adjusted_fitness == pytest.approx(3.0)
    # The champion is kept separately and never counted as a species elite.
    assert plan.elites == {0: (1,), 1: (2,)}
    assert plan.selection_pool == {0: (0,), 1: (2,)}
    assert not plan.reseed


def test_rounding_remainder_goes_to_best_species() -> None:
    species = [make_species(index, [index]) for index in range(3)]
    fitnesses = [1.0, 1.0, 1.0]

    plan = compute_offspring_allocation(
        species, fitnesses, population_size=5, config=ReproductionConfig()
    )

    assert plan.offspring == {0: 2, 1: 1, 2: 1}


def test_rounding_overshoot_is_taken_back() -> None:
    species = [make_species(0, [0]), make_species(1, [1])]

    plan = compute_offspring_allocation(
        species, [1.0, 1.0], population_size=6, config=ReproductionConfig()
    )

    assert sum(plan.offspring.values()) == 5
    assert plan.offspring == {0: 2, 1: 3}


def test_allocation_always_sums_to_population_minus_champion() -> None:
    rng = Random(8)
    for _ in range(25):
        size = rng.randint(2, 40)
        species_count = rng.randint(1, min(size, 6))
        members = list(range(size))
        species = [
            make_species(index, members[index::species_count])
            for index in range(species_count)
        ]
        fitnesses = [rng.uniform(-5.0, 5.0) for _ in members]
        population_size = rng.randint(2, 60)

        plan = compute_offspring_allocation(
            species, fitnesses, population_size, ReproductionConfig(elitism=2)
        )

        assert sum(plan.offspring.values()) == population_size - 1
        for species_id, count in plan.offspring.items():
            assert count >= 0
            assert len(plan.elites[species_id]) <= count


def test_zero_adjusted_fitness_splits_evenly() -> None:
    species = [make_species(0, [0, 1]), make_species(1, [2, 3])]

    plan = compute_offspring_allocation(
        species, [0.0, 0.0, 0.0, 0.0], population_size=5, config=ReproductionConfig()
    )

    assert plan.offspring == {0: 2, 1: 2}


def test_stagnant_species_without_champion_is_excluded() -> None:
    species = [make_species(0, [0, 1]), make_species(1, [2, 3], stagnation=16)]
    fitnesses = [2.0, 1.0, 1.5, 1.5]

    plan = compute_offspring_allocation(
        species, fitnesses, population_size=4, config=ReproductionConfig(max_stagnation=15)
    )

    assert plan.excluded == (1,)
    assert plan.offspring == {0: 3}
    assert 1 not in plan.adjusted_fitness


def test_stagnant_species_holding_champion_survives() -> None:
    species = [make_species(0, [0, 1], stagnation=16), make_species(1, [2, 3])]
    fitnesses = [5.0, 1.0, 1.5, 1.5]

    plan = compute_offspring_allocation(
        species, fitnesses, population_size=4, config=ReproductionConfig(max_stagnation=15)
    )

    assert plan.excluded == ()
    assert set(plan.offspring) == {0, 1}


def test_stagnation_at_limit_is_not_excluded() -> None:
    species = [make_species(0, [0]), make_species(1, [1], stagnation=15)]

    plan = compute_offspring_allocation(
        species, [2.0, 1.0], population_size=3, config=ReproductionConfig(max_stagnation=15)
    )

    assert plan.excluded == ()


def test_all_species_stagnant_triggers_reseed() -> None:
    species = [
        make_species(0, [0, 1], stagnation=3),
        make_species(1, [2], stagnation=3),
    ]
    fitnesses = [1.0, 4.0, 2.0]

    plan = compute_offspring_allocation(
        species, fitnesses, population_size=5, config=ReproductionConfig(max_stagnation=2)
    )

    assert plan.reseed
    assert plan.elite_index == 1
    assert plan.excluded == (1,)

    genomes = [example_genome(0.1), example_genome(0.9), example_genome(-0.3)]
    offspring = Reproducer(ReproductionConfig(), quiet_mutator()).reproduce(
        genomes, fitnesses, plan, population_size=5, rng=Random(0)
    )

    assert len(offspring) == 5
    assert all(child.connections == genomes[1].connections for child in offspring)


def test_allocation_rejects_bad_input() -> None:
    with pytest.raises(ValueError):
        compute_offspring_allocation([], [], population_size=3, config=ReproductionConfig())
    with pytest.raises(ValueError):
        compute_offspring_allocation(
            [make_species(0, [0])], [1.0], population_size=0, config=ReproductionConfig()
        )


def test_selection_fitness_sanitizes_failed_scores() -> None:
    values = [None, math.nan, float("-inf"), float("inf"), 1.0, 2.0]

    assert selection_fitness(values) == [-1.0, -1.0, -1.0, 2.0, 1.0, 2.0]
    assert selection_fitness([None, None]) == [-1.0, -1.0]
    assert selection_fitness([5.0, 2.0, None]) == [5.0, 2.0, -3.0]


def test_failed_species_gets_no_offspring() -> None:
    species = [make_species(0, [0]), make_species(1, [1, 2])]
    fitnesses = selection_fitness([5.0, float("-inf"), float("-inf")])

    plan = compute_offspring_allocation(
        species, fitnesses, population_size=11, config=ReproductionConfig()
    )

    assert fitnesses[1] < fitnesses[0]
    assert plan.offspring == {0: 10, 1: 0}


def test_best_index_prefers_lowest_index_on_ties() -> None:
    assert best_index([1.0, 3.0, 3.0, 2.0]) == 1
    with pytest.raises(ValueError):
        best_index([])


def test_select_parent_is_fitness_proportional() -> None:
    rng = Random(4)
    fitnesses = [0.0, 1.0, 3.0]

    picks = [select_parent((0, 1, 2), fitnesses, rng) for _ in range(2000)]

    assert picks.count(0) < 20
    assert picks.count(2) > 2 * picks.count(1)
    assert select_parent((1,), fitnesses, rng) == 1


def test_select_parent_shifts_negative_scores() -> None:
    rng = Random(5)
    fitnesses = [-3.0, -1.0]

    picks = [select_parent((0, 1), fitnesses, rng) for _ in range(200)]

    assert picks.count(1) >= 195
    assert select_parent((0, 1), [-2.0, -2.0], rng) in (0, 1)


class RecordingRandom(Random):
    def __init__(self, seed: int) -> None:
        super().__init__(seed)
        self.weights: list[list[float]] = []

    def choices(  # type: ignore[override]
        self, population, weights=None, *, cum_weights=None, k=1
    ):
        self.weights.append(list(weights))
        return super().choices(population, weights=weights, cum_weights=cum_weights, k=k)


@pytest.mark.parametrize("fitnesses", [[1.0, 2.0, 4.0], [-3.0, -2.0, 0.0], [0.0, 0.0, 0.0]])
def test_select_parent_never_zeroes_the_worst_parent(fitnesses: list[float]) -> None:
    rng = RecordingRandom(0)

    select_parent((0, 1, 2), fitnesses, rng)

    (weights,) = rng.weights
    assert all(weight > 0.0 for weight in weights)
    assert weights[0] <= weights[1] <= weights[2]


def test_reproduce_returns_exact_population_with_champion_first() -> None:
    genomes = [example_genome(weight) for weight in (0.1, 0.2, 0.3, 0.4, 0.5)]
    for index, genome in enumerate(genomes):
        genome.fitness = float(index)
        genome.species_id = 0 if index < 3 else 1
    fitnesses = [float(index) for index in range(5)]
    species = [make_species(0, [0, 1, 2]), make_species(1, [3, 4])]
    config = ReproductionConfig(elitism=1, crossover_rate=1.0, interspecies_mating_rate=0.5)
    plan = compute_offspring_allocation(species, fitnesses, 7, config)

    offspring = Reproducer(config, quiet_mutator()).reproduce(
        genomes, fitnesses, plan, population_size=7, rng=Random(9)
    )

    assert len(offspring) == 7
    champion = offspring[0]
    assert champion.connections == genomes[4].connections
    assert champion.fitness is None
    assert champion.species_id is None
    assert all(child is not genome for child in offspring for genome in genomes)
    # Elites are copied unchanged.
    assert any(child.connections == genomes[2].connections for child in offspring[1:])


def test_reproduce_without_crossover_copies_parents() -> None:
    genomes = [example_genome(weight) for weight in (0.1, 0.2, 0.3)]
    fitnesses = [1.0, 2.0, 3.0]
    species = [make_species(0, [0, 1, 2])]
    config = ReproductionConfig(crossover_rate=0.0)
    plan = compute_offspring_allocation(species, fitnesses, 6, config)

    offspring = Reproducer(config, quiet_mutator()).reproduce(
        genomes, fitnesses, plan, population_size=6, rng=Random(1)
    )

    weights = {genome.connections[0].weight for genome in genomes}
    assert len(offspring) == 6
    assert all(child.connections[0].weight in weights for child in offspring)


def test_single_member_species_breeds_by_copy() -> None:
    genomes = [example_genome(weight) for weight in (0.1, 0.2, 0.3)]
    fitnesses = [3.0, 1.0, 1.0]
    species = [make_species(0, [0]), make_species(1, [1, 2])]
    config = ReproductionConfig(elitism=0, crossover_rate=1.0, interspecies_mating_rate=0.0)
    plan = compute_offspring_allocation(species, fitnesses, 9, config)

    offspring = Reproducer(config, quiet_mutator()).reproduce(
        genomes, fitnesses, plan, population_size=9, rng=Random(3)
    )

    assert plan.offspring[0] == 6
    assert all(child.connections[0].weight == 0.1 for child in offspring[1:7])


def test_interspecies_mating_draws_mate_from_other_species() -> None:
    genomes = [example_genome(weight) for weight in (0.1, 0.2, 0.8, 0.9)]
    fitnesses = [3.0, 3.0, 1.0, 1.0]
    species = [make_species(0, [0, 1]), make_species(1, [2, 3])]
    config = ReproductionConfig(
        elitism=0,
        survival_threshold=1.0,
        crossover_rate=1.0,
        interspecies_mating_rate=1.0,
    )
    plan = compute_offspring_allocation(species, fitnesses, 41, config)

    offspring = Reproducer(config, quiet_mutator()).reproduce(
        genomes, fitnesses, plan, population_size=41, rng=Random(6)
    )

    assert plan.offspring[0] == 30
    species_a_children = offspring[1:31]
    assert any(child.connections[0].weight in (0.8, 0.9) for child in species_a_children)
    assert all(
        child.connections[0].weight in (0.1, 0.2, 0.8, 0.9) for child in species_a_children
    )


@pytest.mark.parametrize(
    "overrides",
    [
        {"elitism": -1},
        {"survival_threshold": 0.0},
        {"survival_threshold": 1.5},
        {"max_stagnation": -1},
        {"interspecies_mating_rate": 2.0},
        {"crossover_rate": -0.1},
    ],
)
def test_reproduction_config_validation(overrides: dict[str, object]) -> None:
    with pytest.raises(ConfigError):
        ReproductionConfig(**overrides)  # type: ignore[arg-type]
