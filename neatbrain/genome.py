"""Genome representation: flat, id-indexed node and connection containers."""

from __future__ import annotations

from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .distance import compatibility_distance
from .errors import (
    DanglingNodeReference,
    DuplicateConnection,
    DuplicateNode,
    StructuralError,
)
from .genes import ConnectionGene, NodeGene, NodeType

if TYPE_CHECKING:
    from .activations import ActivationMap
    from .network import Network, TopologyMode


@dataclass(slots=True)
class Genome:
    """Graph-valued encoding of one candidate network.

    Genes reference each other only by integer id. Connections are never
    removed; disabling a connection is how structure is pruned.
    """

    nodes: dict[int, NodeGene]
    connections: dict[int, ConnectionGene]
    fitness: float | None = None
    species_id: int | None = None
    _pair_index: dict[tuple[int, int], int] = field(
        init=False,
        default_factory=dict,
        repr=False,
    )
    _next_node_id: int = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.nodes:
            msg = "Genome must contain at least one node."
            raise ValueError(msg)
        for node_id, node in self.nodes.items():
            if node.id != node_id:
                msg = f"Node id mismatch: key {node_id} != node.id {node.id}"
                raise ValueError(msg)
        self._next_node_id = max(self.nodes) + 1
        for innovation, connection in self.connections.items():
            if connection.innovation != innovation:
                msg = (
                    f"Connection innovation mismatch: key {innovation} "
                    f"!= connection.innovation {connection.innovation}"
                )
                raise ValueError(msg)
            self._check_endpoints(connection)
            if connection.pair in self._pair_index:
                raise DuplicateConnection(*connection.pair)
            self._pair_index[connection.pair] = innovation

    def copy(self) -> Genome:
        """Return an independent copy, keeping fitness and species assignment."""
        genome = Genome(
            nodes=dict(self.nodes),
            connections=dict(self.connections),
            fitness=self.fitness,
            species_id=self.species_id,
        )
        genome._next_node_id = self._next_node_id
        return genome

    def offspring_copy(self) -> Genome:
        """Return a copy with evaluation state cleared."""
        genome = self.copy()
        genome.fitness = None
        genome.species_id = None
        return genome

    @property
    def input_ids(self) -> tuple[int, ...]:
        return self._ids_of(NodeType.INPUT)

    @property
    def output_ids(self) -> tuple[int, ...]:
        return self._ids_of(NodeType.OUTPUT)

    @property
    def bias_ids(self) -> tuple[int, ...]:
        return self._ids_of(NodeType.BIAS)

    @property
    def hidden_ids(self) -> tuple[int, ...]:
        return self._ids_of(NodeType.HIDDEN)

    def sorted_nodes(self) -> list[NodeGene]:
        """Node genes ordered by id."""
        return [self.nodes[node_id] for node_id in sorted(self.nodes)]

    def sorted_connections(self) -> list[ConnectionGene]:
        """Connection genes ordered by historical marking."""
        return [self.connections[innovation] for innovation in sorted(self.connections)]

    def enabled_connections(self) -> list[ConnectionGene]:
        return [conn for conn in self.sorted_connections() if conn.enabled]

    def contains_connection(self, in_node: int, out_node: int) -> bool:
        """Return whether a connection between the nodes exists."""
        return (in_node, out_node) in self._pair_index

    def connection_between(self, in_node: int, out_node: int) -> ConnectionGene | None:
        innovation = self._pair_index.get((in_node, out_node))
        return None if innovation is None else self.connections[innovation]

    def add_node(
        self,
        node_type: NodeType | str,
        *,
        node_id: int | None = None,
        activation: str = "sigmoid",
        time_constant: float = 1.0,
    ) -> NodeGene:
        """Create and register a node gene, allocating an id when none is given."""
        if node_id is None:
            node_id = self.allocate_node_id()
        node = NodeGene(
            id=node_id,
            type=NodeType.coerce(node_type),
            activation=activation,
            time_constant=time_constant,
        )
        self.insert_node(node)
        return node

    def insert_node(self, node: NodeGene) -> None:
        """Register an existing node gene."""
        if node.id in self.nodes:
            msg = f"Node {node.id} already exists."
            raise DuplicateNode(msg)
        self.nodes[node.id] = node
        self._next_node_id = max(self._next_node_id, node.id + 1)

    def replace_node(self, node: NodeGene) -> None:
        """Swap in an updated copy of an existing node gene."""
        if node.id not in self.nodes:
            raise DanglingNodeReference(node.id)
        existing = self.nodes[node.id]
        if existing.type is not node.type:
            msg = f"Node {node.id} cannot change role from {existing.type.value}."
            raise ValueError(msg)
        self.nodes[node.id] = node

    def allocate_node_id(self) -> int:
        """Allocate a fresh node identifier local to this genome."""
        node_id = self._next_node_id
        self._next_node_id += 1
        return node_id

    def add_connection(
        self,
        in_node_id: int,
        out_node_id: int,
        weight: float,
        innovation: int,
        *,
        enabled: bool = True,
    ) -> ConnectionGene:
        """Create and register a connection gene.

        Raises:
            DuplicateConnection: A connection between the ordered pair exists.
            DanglingNodeReference: Either endpoint is not a node of this genome.
        """
        connection = ConnectionGene(
            innovation=innovation,
            in_node_id=in_node_id,
            out_node_id=out_node_id,
            weight=weight,
            enabled=enabled,
        )
        self.insert_connection(connection)
        return connection

    def insert_connection(self, connection: ConnectionGene) -> None:
        """Register an existing connection gene."""
        if connection.pair in self._pair_index:
            raise DuplicateConnection(*connection.pair)
        if connection.innovation in self.connections:
            msg = f"Connection innovation {connection.innovation} already present."
            raise StructuralError(msg)
        self._check_endpoints(connection)
        self.connections[connection.innovation] = connection
        self._pair_index[connection.pair] = connection.innovation

    def replace_connection(self, connection: ConnectionGene) -> None:
        """Swap in an updated copy of a gene with the same marking and endpoints."""
        existing = self.connections.get(connection.innovation)
        if existing is None or existing.pair != connection.pair:
            msg = f"No connection {connection.innovation} on {connection.pair}."
            raise ValueError(msg)
        self.connections[connection.innovation] = connection

    def introduces_cycle(self, in_id: int, out_id: int) -> bool:
        """Detect whether enabling an edge in_id -> out_id would create a cycle."""
        if in_id == out_id:
            return True
        outgoing = self._enabled_adjacency()
        stack = [out_id]
        visited: set[int] = set()
        while stack:
            current = stack.pop()
            if current == in_id:
                return True
            if current in visited:
                continue
            visited.add(current)
            stack.extend(outgoing.get(current, ()))
        return False

    def is_acyclic(self) -> bool:
        """Whether the enabled-connection graph is a DAG."""
        indegree = dict.fromkeys(self.nodes, 0)
        outgoing = self._enabled_adjacency()
        for targets in outgoing.values():
            for target in targets:
                indegree[target] += 1
        queue = deque(node_id for node_id, degree in indegree.items() if degree == 0)
        visited = 0
        while queue:
            node_id = queue.popleft()
            visited += 1
            for target in outgoing.get(node_id, ()):
                indegree[target] -= 1
                if indegree[target] == 0:
                    queue.append(target)
        return visited == len(self.nodes)

    def connected_outputs(self) -> frozenset[int]:
        """Output nodes reachable from at least one input through enabled edges."""
        outgoing = self._enabled_adjacency()
        stack = list(self.input_ids)
        reached: set[int] = set()
        while stack:
            current = stack.pop()
            if current in reached:
                continue
            reached.add(current)
            stack.extend(outgoing.get(current, ()))
        return frozenset(node_id for node_id in self.output_ids if node_id in reached)

    def compatibility_distance(
        self,
        other: Genome,
        *,
        c1: float = 1.0,
        c2: float = 1.0,
        c3: float = 0.4,
    ) -> float:
        """Compatibility distance to ``other``."""
        return compatibility_distance(self, other, c1=c1, c2=c2, c3=c3)

    def to_network(
        self,
        mode: TopologyMode | str,
        *,
        time_step: float = 0.1,
        steps_per_activation: int = 10,
        activation_functions: ActivationMap | None = None,
    ) -> Network:
        """Build the executable phenotype for the given topology mode."""
        from .network import build_network

        return build_network(
            self,
            mode,
            time_step=time_step,
            steps_per_activation=steps_per_activation,
            activation_functions=activation_functions,
        )

    def to_dict(self) -> dict[str, Any]:
        """Structured record of the genome, genes ordered by id and marking."""
        return {
            "nodes": [node.to_dict() for node in self.sorted_nodes()],
            "connections": [conn.to_dict() for conn in self.sorted_connections()],
            "fitness": self.fitness,
            "species_id": self.species_id,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Genome:
        nodes = {}
        for raw in data["nodes"]:
            node = NodeGene.from_dict(raw)
            nodes[node.id] = node
        connections = {}
        for raw in data.get("connections", ()):
            connection = ConnectionGene.from_dict(raw)
            connections[connection.innovation] = connection
        fitness = data.get("fitness")
        species_id = data.get("species_id")
        return cls(
            nodes=nodes,
            connections=connections,
            fitness=None if fitness is None else float(fitness),
            species_id=None if species_id is None else int(species_id),
        )

    def _ids_of(self, node_type: NodeType) -> tuple[int, ...]:
        return tuple(
            sorted(
                node_id for node_id, node in self.nodes.items() if node.type is node_type
            )
        )

    def _enabled_adjacency(self) -> dict[int, list[int]]:
        outgoing: dict[int, list[int]] = {}
        for connection in self.connections.values():
            if connection.enabled:
                outgoing.setdefault(connection.in_node_id, []).append(
                    connection.out_node_id
                )
        return outgoing

    def _check_endpoints(self, connection: ConnectionGene) -> None:
        for node_id in connection.pair:
            if node_id not in self.nodes:
                raise DanglingNodeReference(node_id)


__all__ = ["Genome"]
