"""Innovation-aligned crossover of two parent genomes."""

from __future__ import annotations

from dataclasses import dataclass
from random import Random

from .errors import ConfigError, StructuralError
from .genes import ConnectionGene, NodeGene
from .genome import Genome
from .network import TopologyMode


@dataclass(frozen=True, slots=True)
class CrossoverConfig:
    """Configuration controlling crossover behaviour.

    Attributes:
        disable_inherit_rate: Probability that a matching gene disabled in
            either parent is disabled in the child.
        average_weights: Use the mean of matching weights instead of picking
            one parent's weight at random.
    """

    disable_inherit_rate: float = 0.75
    average_weights: bool = False

    def __post_init__(self) -> None:
        if not 0.0 <= self.disable_inherit_rate <= 1.0:
            msg = "disable_inherit_rate must be in [0, 1]."
            raise ConfigError(msg)


def crossover(
    parent_a: Genome,
    parent_b: Genome,
    *,
    rng: Random,
    fitness_a: float | None = None,
    fitness_b: float | None = None,
    config: CrossoverConfig | None = None,
    mode: TopologyMode | str = TopologyMode.FEED_FORWARD,
) -> Genome:
    """Create a child genome from two parents.

    Matching genes are inherited from either parent at random (or averaged).
    Disjoint and excess genes come from the fitter parent; when fitness is
    tied each one is inherited with probability one half. No markings are
    created here.

    Args:
        parent_a: First parent.
        parent_b: Second parent.
        rng: Random generator controlling stochastic choices.
        fitness_a: Fitness of ``parent_a``; defaults to ``parent_a.fitness``.
        fitness_b: Fitness of ``parent_b``; defaults to ``parent_b.fitness``.
        config: Behavioural configuration (optional).
        mode: In feed-forward mode any inherited gene that would close a
            cycle is kept but disabled.
    """
    if config is None:
        config = CrossoverConfig()
    mode = TopologyMode.coerce(mode)

    score_a = _score(parent_a.fitness if fitness_a is None else fitness_a)
    score_b = _score(parent_b.fitness if fitness_b is None else fitness_b)
    tie = score_a == score_b
    leader, follower = (
        (parent_b, parent_a) if score_b > score_a else (parent_a, parent_b)
    )

    child = Genome(nodes=_merge_nodes(leader, follower, tie=tie, rng=rng), connections={})

    for innovation in sorted(set(leader.connections) | set(follower.connections)):
        lead_conn = leader.connections.get(innovation)
        follow_conn = follower.connections.get(innovation)
        if lead_conn is not None and follow_conn is not None:
            gene = _inherit_matching(lead_conn, follow_conn, rng=rng, config=config)
        elif lead_conn is not None:
            if tie and rng.random() >= 0.5:
                continue
            gene = lead_conn
        elif follow_conn is not None:
            if not tie or rng.random() >= 0.5:
                continue
            gene = follow_conn
        else:
            continue

        if child.contains_connection(*gene.pair):
            continue
        if (
            gene.enabled
            and not mode.allows_cycles
            and child.introduces_cycle(gene.in_node_id, gene.out_node_id)
        ):
            gene = gene.copy(enabled=False)
        child.insert_connection(gene)

    return child


def _score(value: float | None) -> float:
    return float("-inf") if value is None else value


def _inherit_matching(
    lead_conn: ConnectionGene,
    follow_conn: ConnectionGene,
    *,
    rng: Random,
    config: CrossoverConfig,
) -> ConnectionGene:
    if config.average_weights:
        weight = (lead_conn.weight + follow_conn.weight) / 2.0
    elif rng.random() < 0.5:
        weight = follow_conn.weight
    else:
        weight = lead_conn.weight

    enabled = True
    if not (lead_conn.enabled and follow_conn.enabled):
        enabled = rng.random() >= config.disable_inherit_rate
    return lead_conn.copy(weight=weight, enabled=enabled)


def _merge_nodes(
    leader: Genome,
    follower: Genome,
    *,
    tie: bool,
    rng: Random,
) -> dict[int, NodeGene]:
    """Union of both parents' nodes; shared ids take the leader's gene."""
    merged: dict[int, NodeGene] = {}
    for node_id in sorted(set(leader.nodes) | set(follower.nodes)):
        lead_node = leader.nodes.get(node_id)
        follow_node = follower.nodes.get(node_id)
        if lead_node is None:
            merged[node_id] = follow_node  # type: ignore[assignment]
        elif follow_node is None or follow_node == lead_node:
            merged[node_id] = lead_node
        elif follow_node.type is not lead_node.type:
            msg = f"Parents disagree on the role of node {node_id}."
            raise StructuralError(msg)
        else:
            merged[node_id] = follow_node if tie and rng.random() < 0.5 else lead_node
    return merged


__all__ = ["CrossoverConfig", "crossover"]
