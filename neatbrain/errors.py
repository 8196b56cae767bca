"""Exception taxonomy shared across the evolutionary engine."""

from __future__ import annotations


class NEATError(Exception):
    """Base class for every error raised by the engine."""


class StructuralError(NEATError, ValueError):
    """A genome violates a structural invariant and should be considered corrupt."""


class CyclicTopology(StructuralError):
    """The enabled-connection graph contains a cycle where a DAG is required."""


class DanglingNodeReference(StructuralError):
    """A connection references a node id missing from the genome."""

    def __init__(self, node_id: int) -> None:
        super().__init__(f"Connection references unknown node {node_id}.")
        self.node_id = node_id


class DuplicateConnection(StructuralError):
    """A connection already exists between the same ordered node pair."""

    def __init__(self, in_node_id: int, out_node_id: int) -> None:
        super().__init__(
            f"Connection between nodes ({in_node_id}, {out_node_id}) already exists."
        )
        self.pair = (in_node_id, out_node_id)


class DuplicateNode(StructuralError):
    """A node id is already registered in the genome."""


class ConfigError(NEATError, ValueError):
    """A hyperparameter is missing or out of range."""


class MissingConfig(ConfigError):
    """A required configuration key was not supplied."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Missing required configuration key: {key!r}")
        self.key = key


class EvaluationError(NEATError, RuntimeError):
    """Wraps an exception raised by the external fitness function."""

    def __init__(self, genome_id: int, cause: BaseException) -> None:
        super().__init__(f"Fitness evaluation failed for genome {genome_id}: {cause!r}")
        self.genome_id = genome_id
        self.cause = cause


class InputSizeMismatch(NEATError, ValueError):
    """The number of inputs does not match the network's input nodes."""

    def __init__(self, expected: int, received: int) -> None:
        super().__init__(f"Expected {expected} inputs but received {received}.")
        self.expected = expected
        self.received = received


class OutputSizeMismatch(NEATError, ValueError):
    """The network's output node count differs from what the caller declared."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Expected {expected} outputs but network has {actual}.")
        self.expected = expected
        self.actual = actual


class PhaseError(NEATError, RuntimeError):
    """A generation phase was requested out of order."""


__all__ = [
    "ConfigError",
    "CyclicTopology",
    "DanglingNodeReference",
    "DuplicateConnection",
    "DuplicateNode",
    "EvaluationError",
    "InputSizeMismatch",
    "MissingConfig",
    "NEATError",
    "OutputSizeMismatch",
    "PhaseError",
    "StructuralError",
]
