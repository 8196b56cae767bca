from __future__ import annotations

import pickle
from pathlib import Path
from random import Random

import pytest
from neatbrain.errors import PhaseError
from neatbrain.evaluator import EvaluationConfig, SyncEvaluator
from neatbrain.genes import ConnectionGene, NodeGene, NodeType
from neatbrain.genome import Genome
from neatbrain.network import Network
from neatbrain.persistence import (
    TrainingCheckpoint,
    load_checkpoint,
    load_genome,
    load_snapshot,
    save_checkpoint,
    save_genome,
    save_snapshot,
)
from neatbrain.population import Population, PopulationConfig


def _sum_fitness(network: Network) -> float:
    return sum(network.activate([0.5, -0.5]))


def _evolved_population(generations: int = 2) -> Population:
    population = Population(
        PopulationConfig(population_size=8, num_inputs=2, num_outputs=2),
        rng=Random(17),
    )
    evaluator = SyncEvaluator(_sum_fitness, config=EvaluationConfig(seed=3))
    for _ in range(generations):
        population.step(evaluator)
    return population


def test_genome_yaml_roundtrip(tmp_path: Path) -> None:
    nodes = {
        0: NodeGene(0, NodeType.INPUT, "identity"),
        1: NodeGene(1, NodeType.BIAS, "identity"),
        2: NodeGene(2, NodeType.OUTPUT, "tanh", time_constant=0.5),
    }
    connections = {
        0: ConnectionGene(0, 0, 2, 0.123456789),
        3: ConnectionGene(3, 1, 2, -1.5, enabled=False),
    }
    genome = Genome(nodes=nodes, connections=connections, fitness=2.5, species_id=4)
    path = tmp_path / "champion.yml"

    save_genome(path, genome)
    loaded = load_genome(path)

    assert loaded.to_dict() == genome.to_dict()
    assert loaded.nodes[2].time_constant == 0.5
    assert not loaded.connections[3].enabled


def test_population_snapshot_yaml_roundtrip(tmp_path: Path) -> None:
    population = _evolved_population()
    path = tmp_path / "snapshots" / "population.yml"

    save_snapshot(path, population)
    restored = Population.from_snapshot(
        load_snapshot(path), population.config, rng=Random(0)
    )

    assert path.exists()
    assert restored.to_snapshot() == population.to_snapshot()
    assert restored.tracker.next_innovation == population.tracker.next_innovation


def test_snapshot_requires_generation_boundary(tmp_path: Path) -> None:
    population = _evolved_population(generations=0)
    population.evaluate(SyncEvaluator(_sum_fitness))

    with pytest.raises(PhaseError):
        save_snapshot(tmp_path / "population.yml", population)


def test_checkpoint_roundtrip_restores_rng(tmp_path: Path) -> None:
    population = _evolved_population()
    checkpoint = TrainingCheckpoint.capture(population)
    path = tmp_path / "neat_state.pkl"

    save_checkpoint(path, checkpoint)
    loaded = load_checkpoint(path)

    assert loaded.generation == 2
    assert loaded.best_fitness == population.champion_fitness
    best = population.best_genome
    assert best is not None and loaded.best_genome is not None
    assert loaded.best_genome.to_dict() == best.to_dict()
    assert loaded.population_snapshot == population.to_snapshot()
    assert loaded.rng().random() == population.rng.random()


def test_load_checkpoint_rejects_foreign_payload(tmp_path: Path) -> None:
    path = tmp_path / "neat_state.pkl"
    with path.open("wb") as handle:
        pickle.dump({"generation": 1}, handle)

    with pytest.raises(ValueError):
        load_checkpoint(path)


def test_load_snapshot_rejects_non_mapping(tmp_path: Path) -> None:
    path = tmp_path / "population.yml"
    path.write_text("- 1\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_snapshot(path)
