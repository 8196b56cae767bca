from __future__ import annotations

from random import Random

import pytest
from neatbrain.distance import compatibility_distance, gene_alignment
from neatbrain.genes import ConnectionGene, NodeGene, NodeType
from neatbrain.genome import Genome


def build_genome(connection_defs: list[tuple[int, int, int, float]]) -> Genome:
    nodes = {
        0: NodeGene(0, NodeType.INPUT, "identity"),
        1: NodeGene(1, NodeType.HIDDEN, "tanh"),
        2: NodeGene(2, NodeType.OUTPUT, "identity"),
        3: NodeGene(3, NodeType.HIDDEN, "tanh"),
    }
    connections = {
        innovation: ConnectionGene(
            innovation=innovation,
            in_node_id=in_id,
            out_node_id=out_id,
            weight=weight,
        )
        for innovation, in_id, out_id, weight in connection_defs
    }
    return Genome(nodes=nodes, connections=connections)


def random_genome(rng: Random) -> Genome:
    pairs = [(0, 1), (0, 2), (0, 3), (1, 2), (3, 2), (1, 3)]
    chosen = [
        (innovation, src, dst, rng.uniform(-2.0, 2.0))
        for innovation, (src, dst) in enumerate(pairs)
        if rng.random() < 0.6
    ]
    return build_genome(chosen)


def test_compatibility_distance_follows_formula() -> None:
    genome_a = build_genome([(0, 0, 1, 0.5), (1, 1, 2, 0.7)])
    genome_b = build_genome([(0, 0, 1, 0.6), (2, 1, 2, 0.9)])

    # One disjoint (1), one excess (2), W = 0.1; N = 1 for small genomes.
    delta = compatibility_distance(genome_a, genome_b, c1=1.0, c2=1.0, c3=0.4)
    assert delta == pytest.approx(2.04)

    matches, disjoint, excess, weight_diff = gene_alignment(
        genome_a.connections, genome_b.connections
    )
    assert (matches, disjoint, excess) == (1, 1, 1)
    assert weight_diff == pytest.approx(0.1)


def test_coefficients_weight_each_term() -> None:
    genome_a = build_genome([(0, 0, 1, 0.0), (1, 1, 2, 1.0)])
    genome_b = build_genome([(0, 0, 1, 1.0), (4, 0, 2, 1.0), (5, 0, 3, 1.0)])

    # Marking 1 is disjoint, 4 and 5 are excess.
    delta = compatibility_distance(genome_a, genome_b, c1=2.0, c2=3.0, c3=0.5)
    assert delta == pytest.approx(2.0 * 2 + 3.0 * 1 + 0.5 * 1.0)


def test_large_genomes_are_normalized() -> None:
    nodes = {
        node_id: NodeGene(node_id, NodeType.INPUT if node_id < 25 else NodeType.OUTPUT)
        for node_id in range(26)
    }
    shared = {
        innovation: ConnectionGene(innovation, innovation, 25, 1.0)
        for innovation in range(20)
    }
    extra = {
        innovation: ConnectionGene(innovation, innovation, 25, 1.0)
        for innovation in range(20, 25)
    }
    small = Genome(nodes=dict(nodes), connections=dict(shared))
    large = Genome(nodes=dict(nodes), connections={**shared, **extra})

    delta = compatibility_distance(small, large, c1=1.0, c2=1.0, c3=0.4)
    assert delta == pytest.approx(5 / 25)


def test_distance_is_symmetric_and_zero_on_self() -> None:
    rng = Random(11)
    genomes = [random_genome(rng) for _ in range(12)]

    for left in genomes:
        assert compatibility_distance(left, left, c1=1.0, c2=1.0, c3=0.4) == 0.0
        for right in genomes:
            forward = compatibility_distance(left, right, c1=1.0, c2=1.0, c3=0.4)
            backward = compatibility_distance(right, left, c1=1.0, c2=1.0, c3=0.4)
            assert forward == backward


def test_empty_genomes_have_zero_distance() -> None:
    empty = build_genome([])
    assert compatibility_distance(empty, empty.copy(), c1=1.0, c2=1.0, c3=0.4) == 0.0
    assert empty.compatibility_distance(build_genome([(0, 0, 1, 1.0)])) == 1.0
