"""Phenotype construction and feed-forward evaluation."""

from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Union

from .activations import ActivationFunction, ActivationMap, resolve_activations
from .errors import CyclicTopology, InputSizeMismatch, OutputSizeMismatch
from .genes import ConnectionGene, NodeGene, NodeType

if TYPE_CHECKING:
    from .ctrnn import CTRNNetwork
    from .genome import Genome


class TopologyMode(str, Enum):
    """How a genome is turned into a runnable network."""

    FEED_FORWARD = "feed_forward"
    RECURRENT = "recurrent"

    @classmethod
    def coerce(cls, value: TopologyMode | str) -> TopologyMode:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower().replace("-", "_"))
        except ValueError as error:
            valid = ", ".join(member.value for member in cls)
            msg = f"Invalid topology mode {value!r}. Expected one of: {valid}"
            raise ValueError(msg) from error

    @property
    def allows_cycles(self) -> bool:
        return self is TopologyMode.RECURRENT


def compute_feedforward_layers(
    nodes: Mapping[int, NodeGene],
    connections: Iterable[ConnectionGene],
) -> tuple[tuple[int, ...], ...]:
    """Compute topological layers for feed-forward execution.

    Raises:
        CyclicTopology: The enabled connections do not form a DAG.
    """
    indegree: dict[int, int] = dict.fromkeys(nodes, 0)
    outgoing: dict[int, list[int]] = defaultdict(list)

    for connection in connections:
        if not connection.enabled:
            continue
        indegree[connection.out_node_id] += 1
        outgoing[connection.in_node_id].append(connection.out_node_id)

    roots = [node_id for node_id, degree in indegree.items() if degree == 0]
    queue: deque[int] = deque(sorted(roots))
    processed: set[int] = set()
    layers: list[tuple[int, ...]] = []

    while queue:
        current_layer: list[int] = []
        next_queue: set[int] = set()
        while queue:
            node_id = queue.popleft()
            if node_id in processed:
                continue
            processed.add(node_id)
            current_layer.append(node_id)
            for target in outgoing.get(node_id, []):
                indegree[target] -= 1
                if indegree[target] == 0:
                    next_queue.add(target)
        if current_layer:
            layers.append(tuple(sorted(current_layer)))
        queue.extend(sorted(next_queue))

    if len(processed) != len(nodes):
        stuck = sorted(set(nodes) - processed)
        msg = f"Cycle detected among nodes {stuck} while computing feed-forward layers."
        raise CyclicTopology(msg)

    return tuple(layers)


def collect_incoming(
    connections: Iterable[ConnectionGene],
) -> dict[int, tuple[tuple[int, float], ...]]:
    """Group enabled connections by target, sources in ascending id order."""
    incoming: dict[int, list[tuple[int, float]]] = defaultdict(list)
    for connection in connections:
        if connection.enabled:
            incoming[connection.out_node_id].append(
                (connection.in_node_id, connection.weight)
            )
    return {
        node_id: tuple(sorted(sources, key=lambda item: item[0]))
        for node_id, sources in incoming.items()
    }


class _NetworkIO:
    """Input/output bookkeeping shared by the phenotype classes."""

    __slots__ = ()

    input_ids: tuple[int, ...]
    output_ids: tuple[int, ...]

    def check_io(self, num_inputs: int, num_outputs: int) -> None:
        """Validate the declared input/output counts against the node sets."""
        if len(self.input_ids) != num_inputs:
            raise InputSizeMismatch(len(self.input_ids), num_inputs)
        if len(self.output_ids) != num_outputs:
            raise OutputSizeMismatch(num_outputs, len(self.output_ids))

    def _check_inputs(self, inputs: Sequence[float]) -> None:
        if len(inputs) != len(self.input_ids):
            raise InputSizeMismatch(len(self.input_ids), len(inputs))


@dataclass(slots=True)
class FeedForwardNetwork(_NetworkIO):
    """Executable feed-forward network built from a genome."""

    input_ids: tuple[int, ...]
    bias_ids: tuple[int, ...]
    output_ids: tuple[int, ...]
    layers: tuple[tuple[int, ...], ...]
    incoming: Mapping[int, tuple[tuple[int, float], ...]]
    activation_functions: Mapping[int, ActivationFunction]

    @classmethod
    def from_genome(
        cls,
        genome: Genome,
        *,
        activation_functions: ActivationMap | None = None,
    ) -> FeedForwardNetwork:
        """Construct a feed-forward network from a genome."""
        nodes = genome.nodes
        connections = genome.enabled_connections()
        layers = compute_feedforward_layers(nodes, connections)
        computed = {
            node_id: node.activation
            for node_id, node in nodes.items()
            if not node.type.is_sensor
        }
        return cls(
            input_ids=genome.input_ids,
            bias_ids=genome.bias_ids,
            output_ids=genome.output_ids,
            layers=layers,
            incoming=collect_incoming(connections),
            activation_functions=resolve_activations(computed, activation_functions),
        )

    def activate(self, inputs: Sequence[float]) -> list[float]:
        """Run a single forward pass and return outputs in node-id order."""
        self._check_inputs(inputs)

        values: dict[int, float] = {}
        for bias_id in self.bias_ids:
            values[bias_id] = 1.0
        for node_id, value in zip(self.input_ids, inputs):
            values[node_id] = float(value)

        for layer in self.layers:
            for node_id in layer:
                if node_id in values:
                    continue
                total = 0.0
                for src_id, weight in self.incoming.get(node_id, ()):
                    total += values[src_id] * weight
                values[node_id] = self.activation_functions[node_id](total)

        return [values[node_id] for node_id in self.output_ids]

    def reset(self) -> None:
        """Feed-forward networks carry no state between activations."""


Network = Union[FeedForwardNetwork, "CTRNNetwork"]


def build_network(
    genome: Genome,
    mode: TopologyMode | str,
    *,
    time_step: float = 0.1,
    steps_per_activation: int = 10,
    activation_functions: ActivationMap | None = None,
) -> Network:
    """Build the phenotype for ``genome`` in the requested topology mode."""
    mode = TopologyMode.coerce(mode)
    if mode is TopologyMode.FEED_FORWARD:
        return FeedForwardNetwork.from_genome(
            genome, activation_functions=activation_functions
        )

    from .ctrnn import CTRNNetwork

    return CTRNNetwork.from_genome(
        genome,
        time_step=time_step,
        steps_per_activation=steps_per_activation,
        activation_functions=activation_functions,
    )


__all__ = [
    "FeedForwardNetwork",
    "Network",
    "TopologyMode",
    "build_network",
    "collect_incoming",
    "compute_feedforward_layers",
]
