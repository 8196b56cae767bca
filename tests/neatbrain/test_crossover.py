from __future__ import annotations

from random import Random

import pytest
from neatbrain.crossover import CrossoverConfig, crossover
from neatbrain.errors import ConfigError, StructuralError
from neatbrain.genes import ConnectionGene, NodeGene, NodeType
from neatbrain.genome import Genome


def build_genome(
    connection_defs: list[tuple[int, int, int, float]],
    *,
    fitness: float | None = None,
    extra_nodes: tuple[int, ...] = (),
) -> Genome:
    nodes = {
        0: NodeGene(0, NodeType.INPUT, "identity"),
        1: NodeGene(1, NodeType.OUTPUT, "sigmoid"),
    }
    for node_id in extra_nodes:
        nodes[node_id] = NodeGene(node_id, NodeType.HIDDEN, "tanh")
    connections = {
        innovation: ConnectionGene(innovation, in_id, out_id, weight)
        for innovation, in_id, out_id, weight in connection_defs
    }
    return Genome(nodes=nodes, connections=connections, fitness=fitness)


def test_self_crossover_reproduces_parent() -> None:
    parent = build_genome(
        [(0, 0, 1, 0.5), (1, 0, 2, -1.0), (2, 2, 1, 2.0)],
        fitness=1.0,
        extra_nodes=(2,),
    )

    child = crossover(parent, parent.copy(), rng=Random(0))

    assert set(child.nodes) == set(parent.nodes)
    assert set(child.connections) == set(parent.connections)
    for innovation, connection in parent.connections.items():
        assert child.connections[innovation].weight == connection.weight
        assert child.connections[innovation].enabled


def test_disjoint_and_excess_come_from_fitter_parent() -> None:
    fitter = build_genome(
        [(0, 0, 1, 0.5), (3, 0, 2, 1.0)], fitness=2.0, extra_nodes=(2,)
    )
    weaker = build_genome(
        [(0, 0, 1, -0.5), (1, 0, 3, 1.0), (5, 3, 1, 1.0)],
        fitness=1.0,
        extra_nodes=(3,),
    )

    for seed in range(10):
        child = crossover(weaker, fitter, rng=Random(seed))
        assert set(child.connections) == {0, 3}
        assert child.connections[0].weight in (0.5, -0.5)


def test_explicit_fitness_overrides_genome_fitness() -> None:
    left = build_genome([(0, 0, 1, 0.5), (1, 0, 2, 1.0)], fitness=5.0, extra_nodes=(2,))
    right = build_genome([(0, 0, 1, 0.5), (2, 0, 3, 1.0)], fitness=1.0, extra_nodes=(3,))

    child = crossover(left, right, rng=Random(1), fitness_a=0.0, fitness_b=3.0)

    assert set(child.connections) == {0, 2}


def test_disabled_matching_gene_inheritance() -> None:
    enabled = build_genome([(0, 0, 1, 0.5)], fitness=1.0)
    disabled = build_genome([(0, 0, 1, 0.5)], fitness=1.0)
    disabled.replace_connection(disabled.connections[0].copy(enabled=False))

    always = CrossoverConfig(disable_inherit_rate=1.0)
    never = CrossoverConfig(disable_inherit_rate=0.0)

    child = crossover(enabled, disabled, rng=Random(2), config=always)
    assert not child.connections[0].enabled
    child = crossover(enabled, disabled, rng=Random(2), config=never)
    assert child.connections[0].enabled


def test_average_weights() -> None:
    left = build_genome([(0, 0, 1, 1.0)], fitness=1.0)
    right = build_genome([(0, 0, 1, 3.0)], fitness=2.0)

    child = crossover(
        left, right, rng=Random(0), config=CrossoverConfig(average_weights=True)
    )

    assert child.connections[0].weight == pytest.approx(2.0)


def test_feedforward_child_disables_cycle_closing_gene() -> None:
    leader = build_genome(
        [(0, 0, 2, 1.0), (1, 2, 3, 1.0), (2, 3, 2, 1.0), (3, 3, 1, 1.0)],
        fitness=2.0,
        extra_nodes=(2, 3),
    )
    follower = build_genome([(0, 0, 2, 1.0)], fitness=1.0, extra_nodes=(2, 3))

    child = crossover(leader, follower, rng=Random(3))

    assert set(child.connections) == {0, 1, 2, 3}
    assert not child.connections[2].enabled
    assert child.is_acyclic()

    recurrent = crossover(leader, follower, rng=Random(3), mode="recurrent")
    assert recurrent.connections[2].enabled


def test_parents_disagreeing_on_node_role_raise() -> None:
    left = build_genome([], fitness=1.0, extra_nodes=(2,))
    right = build_genome([], fitness=0.5)
    right.insert_node(NodeGene(2, NodeType.OUTPUT, "sigmoid"))

    with pytest.raises(StructuralError):
        crossover(left, right, rng=Random(0))


def test_crossover_config_validation() -> None:
    with pytest.raises(ConfigError):
        CrossoverConfig(disable_inherit_rate=1.5)
