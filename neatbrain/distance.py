"""Compatibility distance between genomes."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from .genes import ConnectionGene

if TYPE_CHECKING:
    from .genome import Genome

# Genomes whose larger connection set is below this size are not normalized.
SMALL_GENOME_SIZE = 20


def gene_alignment(
    left: Mapping[int, ConnectionGene],
    right: Mapping[int, ConnectionGene],
) -> tuple[int, int, int, float]:
    """Align two connection sets by historical marking.

    Returns:
        A ``(matching, disjoint, excess, weight_diff_sum)`` tuple where
        ``weight_diff_sum`` is the summed absolute weight difference over
        matching genes.
    """
    innovations_left = sorted(left)
    innovations_right = sorted(right)

    index_left = 0
    index_right = 0
    disjoint = 0
    matches = 0
    weight_diff_sum = 0.0

    while index_left < len(innovations_left) and index_right < len(innovations_right):
        innov_left = innovations_left[index_left]
        innov_right = innovations_right[index_right]
        if innov_left == innov_right:
            matches += 1
            weight_diff_sum += abs(left[innov_left].weight - right[innov_right].weight)
            index_left += 1
            index_right += 1
        elif innov_left < innov_right:
            disjoint += 1
            index_left += 1
        else:
            disjoint += 1
            index_right += 1

    excess = (len(innovations_left) - index_left) + (
        len(innovations_right) - index_right
    )
    return matches, disjoint, excess, weight_diff_sum


def compatibility_distance(
    left: Genome,
    right: Genome,
    *,
    c1: float,
    c2: float,
    c3: float,
) -> float:
    """Compute ``(c1*E + c2*D)/N + c3*W`` between two genomes.

    ``E`` counts excess genes, ``D`` disjoint genes, ``W`` is the mean absolute
    weight difference over matching genes and ``N`` is the size of the larger
    connection set, or 1 when that set is small.
    """
    matches, disjoint, excess, weight_diff_sum = gene_alignment(
        left.connections, right.connections
    )
    n = max(len(left.connections), len(right.connections))
    n = 1 if n < SMALL_GENOME_SIZE else n
    average_weight_diff = weight_diff_sum / matches if matches else 0.0
    return (c1 * excess + c2 * disjoint) / n + c3 * average_weight_diff


__all__ = ["SMALL_GENOME_SIZE", "compatibility_distance", "gene_alignment"]
