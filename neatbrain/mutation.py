"""Weight and structural mutation operators."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from random import Random

from .errors import ConfigError
from .genes import NodeType
from .genome import Genome
from .innovations import InnovationTracker
from .network import TopologyMode

WeightInitializer = Callable[[Random], float]


def _default_weight_init(rng: Random) -> float:
    return rng.gauss(0.0, 1.0)


def _check_rate(label: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        msg = f"{label} must be in [0, 1]."
        raise ConfigError(msg)


@dataclass(frozen=True, slots=True)
class WeightMutationConfig:
    """Per-connection weight mutation.

    Each enabled connection is perturbed with probability ``perturb_rate``;
    otherwise it is re-sampled with probability ``reset_rate``.
    """

    perturb_rate: float = 0.8
    perturb_sd: float = 0.5
    reset_rate: float = 0.1
    weight_init: WeightInitializer = _default_weight_init
    weight_limit: float | None = None

    def __post_init__(self) -> None:
        _check_rate("perturb_rate", self.perturb_rate)
        _check_rate("reset_rate", self.reset_rate)
        if self.perturb_sd <= 0.0:
            msg = "perturb_sd must be positive."
            raise ConfigError(msg)
        if self.weight_limit is not None and self.weight_limit <= 0.0:
            msg = "weight_limit must be positive when provided."
            raise ConfigError(msg)

    def clamp(self, weight: float) -> float:
        if self.weight_limit is None:
            return weight
        return max(-self.weight_limit, min(self.weight_limit, weight))


@dataclass(frozen=True, slots=True)
class AddConnectionConfig:
    """Configuration for add-connection mutation."""

    max_attempts: int = 32
    weight_init: WeightInitializer = _default_weight_init

    def __post_init__(self) -> None:
        if self.max_attempts <= 0:
            msg = "max_attempts must be positive."
            raise ConfigError(msg)


@dataclass(frozen=True, slots=True)
class AddNodeConfig:
    """Configuration for add-node mutation."""

    activation: str = "sigmoid"
    time_constant: float = 1.0

    def __post_init__(self) -> None:
        if not self.activation or not self.activation.strip():
            msg = "activation must be a non-empty string."
            raise ConfigError(msg)
        if self.time_constant <= 0.0:
            msg = "time_constant must be positive."
            raise ConfigError(msg)


@dataclass(frozen=True, slots=True)
class TimeConstantMutationConfig:
    """Gaussian perturbation of hidden/output node time constants."""

    mutate_rate: float = 0.0
    perturb_sd: float = 0.1
    minimum: float = 0.01
    maximum: float = 10.0

    def __post_init__(self) -> None:
        _check_rate("time_constant mutate_rate", self.mutate_rate)
        if self.perturb_sd <= 0.0:
            msg = "time_constant perturb_sd must be positive."
            raise ConfigError(msg)
        if not 0.0 < self.minimum < self.maximum:
            msg = "time_constant bounds must satisfy 0 < minimum < maximum."
            raise ConfigError(msg)


@dataclass(frozen=True, slots=True)
class MutationConfig:
    """Probability gates and operator settings for one mutation pass."""

    weight: WeightMutationConfig = field(default_factory=WeightMutationConfig)
    add_connection: AddConnectionConfig = field(default_factory=AddConnectionConfig)
    add_node: AddNodeConfig = field(default_factory=AddNodeConfig)
    time_constant: TimeConstantMutationConfig = field(
        default_factory=TimeConstantMutationConfig
    )
    weight_mutation_rate: float = 0.8
    add_connection_rate: float = 0.05
    add_node_rate: float = 0.03
    toggle_enable_rate: float = 0.01
    mode: TopologyMode = TopologyMode.FEED_FORWARD

    def __post_init__(self) -> None:
        for label, value in (
            ("weight_mutation_rate", self.weight_mutation_rate),
            ("add_connection_rate", self.add_connection_rate),
            ("add_node_rate", self.add_node_rate),
            ("toggle_enable_rate", self.toggle_enable_rate),
        ):
            _check_rate(label, value)
        object.__setattr__(self, "mode", TopologyMode.coerce(self.mode))


@dataclass(frozen=True, slots=True)
class MutationReport:
    """Which operators changed the genome during one pass."""

    weights_changed: int = 0
    connection_added: bool = False
    node_added: bool = False
    toggled: bool = False
    time_constants_changed: int = 0

    @property
    def structural(self) -> bool:
        return self.connection_added or self.node_added


class Mutator:
    """Applies probability-gated mutations to a genome in place.

    Structural operators consult the shared :class:`InnovationTracker` so the
    same change made in two genomes during one generation gets the same
    markings. Operators that find no valid target return ``False`` and leave
    the genome untouched.
    """

    def __init__(self, config: MutationConfig, tracker: InnovationTracker) -> None:
        self.config = config
        self.tracker = tracker

    @property
    def mode(self) -> TopologyMode:
        return self.config.mode

    def mutate(self, genome: Genome, rng: Random) -> MutationReport:
        """Run every operator whose gate fires."""
        config = self.config
        weights_changed = 0
        connection_added = node_added = toggled = False
        time_constants_changed = 0

        if rng.random() < config.weight_mutation_rate:
            weights_changed = self.mutate_weights(genome, rng)
        if rng.random() < config.add_connection_rate:
            connection_added = self.mutate_add_connection(genome, rng)
        if rng.random() < config.add_node_rate:
            node_added = self.mutate_add_node(genome, rng)
        if rng.random() < config.toggle_enable_rate:
            toggled = self.mutate_toggle_enable(genome, rng)
        if config.time_constant.mutate_rate > 0.0:
            time_constants_changed = self.mutate_time_constants(genome, rng)

        return MutationReport(
            weights_changed=weights_changed,
            connection_added=connection_added,
            node_added=node_added,
            toggled=toggled,
            time_constants_changed=time_constants_changed,
        )

    def mutate_weights(self, genome: Genome, rng: Random) -> int:
        """Perturb or reset the weights of enabled connections.

        Returns:
            The number of connections whose weight changed.
        """
        settings = self.config.weight
        mutated = 0
        for connection in genome.enabled_connections():
            if rng.random() < settings.perturb_rate:
                new_weight = connection.weight + rng.gauss(0.0, settings.perturb_sd)
            elif rng.random() < settings.reset_rate:
                new_weight = settings.weight_init(rng)
            else:
                continue
            genome.replace_connection(
                connection.copy(weight=settings.clamp(new_weight))
            )
            mutated += 1
        return mutated

    def mutate_add_connection(self, genome: Genome, rng: Random) -> bool:
        """Connect two previously unconnected nodes if a legal pair is found."""
        settings = self.config.add_connection
        candidates = [
            pair
            for pair in self._iter_connection_candidates(genome)
            if not genome.contains_connection(*pair)
        ]
        if not candidates:
            return False

        attempts = min(settings.max_attempts, len(candidates))
        for in_id, out_id in rng.sample(candidates, k=attempts):
            if not self.mode.allows_cycles and genome.introduces_cycle(in_id, out_id):
                continue
            innovation = self.tracker.register(in_id, out_id)
            genome.add_connection(
                in_id,
                out_id,
                settings.weight_init(rng),
                innovation,
            )
            return True
        return False

    def mutate_add_node(self, genome: Genome, rng: Random) -> bool:
        """Split an enabled connection A->B into A->N (1.0) and N->B (w)."""
        enabled_connections = genome.enabled_connections()
        if not enabled_connections:
            return False
        connection = rng.choice(enabled_connections)
        self.tracker.reserve_node_ids(max(genome.nodes))
        split = self.tracker.register_split(connection)
        if (
            split.node_id in genome.nodes
            or split.incoming in genome.connections
            or split.outgoing in genome.connections
        ):
            return False

        settings = self.config.add_node
        genome.replace_connection(connection.copy(enabled=False))
        genome.add_node(
            NodeType.HIDDEN,
            node_id=split.node_id,
            activation=settings.activation,
            time_constant=settings.time_constant,
        )
        genome.add_connection(
            connection.in_node_id, split.node_id, 1.0, split.incoming
        )
        genome.add_connection(
            split.node_id, connection.out_node_id, connection.weight, split.outgoing
        )
        return True

    def mutate_toggle_enable(self, genome: Genome, rng: Random) -> bool:
        """Flip one connection's enabled flag, reverting if it breaks the network.

        A toggle is reverted when it disconnects an output that was reachable
        from the inputs, or when it re-enables an edge that closes a cycle in
        feed-forward mode.
        """
        connections = genome.sorted_connections()
        if not connections:
            return False
        connection = rng.choice(connections)
        if (
            not connection.enabled
            and not self.mode.allows_cycles
            and genome.introduces_cycle(connection.in_node_id, connection.out_node_id)
        ):
            return False

        connected_before = genome.connected_outputs()
        genome.replace_connection(connection.toggled())
        if not connected_before <= genome.connected_outputs():
            genome.replace_connection(connection)
            return False
        return True

    def mutate_time_constants(self, genome: Genome, rng: Random) -> int:
        """Perturb the time constants of hidden and output nodes."""
        settings = self.config.time_constant
        changed = 0
        for node in genome.sorted_nodes():
            if node.type.is_sensor:
                continue
            if rng.random() >= settings.mutate_rate:
                continue
            value = node.time_constant + rng.gauss(0.0, settings.perturb_sd)
            value = max(settings.minimum, min(settings.maximum, value))
            genome.replace_node(node.copy(time_constant=value))
            changed += 1
        return changed

    def _iter_connection_candidates(self, genome: Genome) -> Iterator[tuple[int, int]]:
        """Yield ordered node pairs respecting role constraints.

        Inputs and bias nodes never receive connections. Outputs only act as
        sources when cycles are allowed.
        """
        source_types = {NodeType.INPUT, NodeType.BIAS, NodeType.HIDDEN}
        if self.mode.allows_cycles:
            source_types.add(NodeType.OUTPUT)
        nodes = genome.sorted_nodes()
        sources = [node.id for node in nodes if node.type in source_types]
        targets = [
            node.id
            for node in nodes
            if node.type in (NodeType.HIDDEN, NodeType.OUTPUT)
        ]
        for in_id in sources:
            for out_id in targets:
                if in_id == out_id:
                    continue
                yield (in_id, out_id)


__all__ = [
    "AddConnectionConfig",
    "AddNodeConfig",
    "MutationConfig",
    "MutationReport",
    "Mutator",
    "TimeConstantMutationConfig",
    "WeightInitializer",
    "WeightMutationConfig",
]
