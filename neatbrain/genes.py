"""Node and connection genes, the building blocks of a genome."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any


class NodeType(str, Enum):
    """Closed set of node roles."""

    INPUT = "input"
    OUTPUT = "output"
    HIDDEN = "hidden"
    BIAS = "bias"

    @classmethod
    def coerce(cls, value: NodeType | str) -> NodeType:
        """Coerce a string or NodeType into a NodeType instance."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            msg = f"Unsupported node type value: {value!r}"
            raise TypeError(msg)
        try:
            return cls(value.lower())
        except ValueError as error:
            valid = ", ".join(member.value for member in cls)
            msg = f"Invalid node type {value!r}. Expected one of: {valid}"
            raise ValueError(msg) from error

    @property
    def is_sensor(self) -> bool:
        """Input and bias nodes carry externally fixed values."""
        return self in (NodeType.INPUT, NodeType.BIAS)


@dataclass(frozen=True, slots=True)
class NodeGene:
    """A node within a genome.

    Attributes:
        id: Identifier, unique within the owning genome.
        type: Role of the node.
        activation: Tag resolved through the activation lookup table.
        time_constant: Integration time constant used by CTRNN evaluation.
    """

    id: int
    type: NodeType
    activation: str = "sigmoid"
    time_constant: float = 1.0

    def __post_init__(self) -> None:
        if self.id < 0:
            msg = "Node id must be non-negative."
            raise ValueError(msg)
        object.__setattr__(self, "type", NodeType.coerce(self.type))
        if not isinstance(self.activation, str) or not self.activation.strip():
            msg = "Activation must be a non-empty string."
            raise ValueError(msg)
        object.__setattr__(self, "activation", self.activation.strip().lower())
        time_constant = float(self.time_constant)
        if not math.isfinite(time_constant) or time_constant <= 0.0:
            msg = "time_constant must be a positive finite number."
            raise ValueError(msg)
        object.__setattr__(self, "time_constant", time_constant)

    def copy(
        self,
        *,
        activation: str | None = None,
        time_constant: float | None = None,
    ) -> NodeGene:
        """Return a copy of the node with optional overrides."""
        return NodeGene(
            id=self.id,
            type=self.type,
            activation=self.activation if activation is None else activation,
            time_constant=(
                self.time_constant if time_constant is None else time_constant
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "activation": self.activation,
            "time_constant": self.time_constant,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NodeGene:
        return cls(
            id=int(data["id"]),
            type=NodeType.coerce(data["type"]),
            activation=str(data.get("activation", "sigmoid")),
            time_constant=float(data.get("time_constant", 1.0)),
        )


@dataclass(frozen=True, slots=True)
class ConnectionGene:
    """A weighted edge between two nodes, identified by its historical marking."""

    innovation: int
    in_node_id: int
    out_node_id: int
    weight: float
    enabled: bool = True

    def __post_init__(self) -> None:
        for field_name, value in (
            ("innovation", self.innovation),
            ("in_node_id", self.in_node_id),
            ("out_node_id", self.out_node_id),
        ):
            if value < 0:
                msg = f"{field_name} must be non-negative."
                raise ValueError(msg)
        try:
            weight = float(self.weight)
        except (TypeError, ValueError) as error:
            msg = f"weight must be convertible to float, got {self.weight!r}"
            raise ValueError(msg) from error
        if not math.isfinite(weight):
            msg = "weight must be a finite number."
            raise ValueError(msg)
        object.__setattr__(self, "weight", weight)
        object.__setattr__(self, "enabled", bool(self.enabled))

    @property
    def pair(self) -> tuple[int, int]:
        """The (source, target) node pair."""
        return (self.in_node_id, self.out_node_id)

    def copy(
        self,
        *,
        weight: float | None = None,
        enabled: bool | None = None,
    ) -> ConnectionGene:
        """Return a copy with optional field overrides."""
        return ConnectionGene(
            innovation=self.innovation,
            in_node_id=self.in_node_id,
            out_node_id=self.out_node_id,
            weight=self.weight if weight is None else float(weight),
            enabled=self.enabled if enabled is None else enabled,
        )

    def toggled(self) -> ConnectionGene:
        """Return a copy with the `enabled` flag flipped."""
        return self.copy(enabled=not self.enabled)

    def to_dict(self) -> dict[str, Any]:
        return {
            "innovation": self.innovation,
            "in_node_id": self.in_node_id,
            "out_node_id": self.out_node_id,
            "weight": self.weight,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ConnectionGene:
        return cls(
            innovation=int(data["innovation"]),
            in_node_id=int(data["in_node_id"]),
            out_node_id=int(data["out_node_id"]),
            weight=float(data["weight"]),
            enabled=bool(data.get("enabled", True)),
        )


__all__ = ["ConnectionGene", "NodeGene", "NodeType"]
