"""Continuous-time recurrent network evaluated by fixed-step Euler integration.

Every non-sensor node ``i`` follows

    tau_i * dy_i/dt = -y_i + sum_j w_ji * o_j

where ``o_j`` is the value of input and bias nodes and ``f_j(y_j)`` for
hidden and output nodes. Bias enters through connections from bias nodes,
which hold 1.0. One call to :meth:`CTRNNetwork.activate` integrates
``steps_per_activation`` Euler steps of size ``time_step`` and reports
``f_i(y_i)`` for each output node.

All nodes are updated synchronously from the previous step's state and in a
fixed order, so identical inputs and state always give identical outputs.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .activations import ActivationFunction, ActivationMap, resolve_activations
from .network import _NetworkIO, collect_incoming

if TYPE_CHECKING:
    from .genome import Genome


@dataclass(slots=True)
class CTRNNetwork(_NetworkIO):
    """Executable CTRNN built from a genome. Cycles are allowed."""

    input_ids: tuple[int, ...]
    bias_ids: tuple[int, ...]
    output_ids: tuple[int, ...]
    node_order: tuple[int, ...]
    time_constants: tuple[float, ...]
    incoming: tuple[tuple[tuple[int, float], ...], ...]
    activation_functions: tuple[ActivationFunction | None, ...]
    time_step: float = 0.1
    steps_per_activation: int = 10
    state: list[float] = field(default_factory=list)
    _input_slots: tuple[int, ...] = field(init=False, repr=False)
    _bias_slots: tuple[int, ...] = field(init=False, repr=False)
    _output_slots: tuple[int, ...] = field(init=False, repr=False)
    _computed_slots: tuple[int, ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not math.isfinite(self.time_step) or self.time_step <= 0.0:
            msg = "time_step must be a positive finite number."
            raise ValueError(msg)
        if self.steps_per_activation <= 0:
            msg = "steps_per_activation must be positive."
            raise ValueError(msg)
        slot_of = {node_id: slot for slot, node_id in enumerate(self.node_order)}
        self._input_slots = tuple(slot_of[node_id] for node_id in self.input_ids)
        self._bias_slots = tuple(slot_of[node_id] for node_id in self.bias_ids)
        self._output_slots = tuple(slot_of[node_id] for node_id in self.output_ids)
        self._computed_slots = tuple(
            slot
            for slot, function in enumerate(self.activation_functions)
            if function is not None
        )
        if len(self.state) != len(self.node_order):
            self.state = [0.0] * len(self.node_order)
        for slot in self._bias_slots:
            self.state[slot] = 1.0

    @classmethod
    def from_genome(
        cls,
        genome: Genome,
        *,
        time_step: float = 0.1,
        steps_per_activation: int = 10,
        activation_functions: ActivationMap | None = None,
    ) -> CTRNNetwork:
        """Construct a CTRNN from a genome's nodes and enabled connections."""
        node_order = tuple(sorted(genome.nodes))
        slot_of = {node_id: slot for slot, node_id in enumerate(node_order)}
        computed = {
            node_id: node.activation
            for node_id, node in genome.nodes.items()
            if not node.type.is_sensor
        }
        resolved = resolve_activations(computed, activation_functions)
        incoming_by_node = collect_incoming(genome.enabled_connections())
        incoming = tuple(
            tuple(
                (slot_of[src_id], weight)
                for src_id, weight in incoming_by_node.get(node_id, ())
            )
            for node_id in node_order
        )
        return cls(
            input_ids=genome.input_ids,
            bias_ids=genome.bias_ids,
            output_ids=genome.output_ids,
            node_order=node_order,
            time_constants=tuple(
                genome.nodes[node_id].time_constant for node_id in node_order
            ),
            incoming=incoming,
            activation_functions=tuple(resolved.get(node_id) for node_id in node_order),
            time_step=time_step,
            steps_per_activation=steps_per_activation,
        )

    def reset(self) -> None:
        """Zero the integrator state, e.g. between independent episodes."""
        self.state = [0.0] * len(self.node_order)
        for slot in self._bias_slots:
            self.state[slot] = 1.0

    def activate(self, inputs: Sequence[float]) -> list[float]:
        """Integrate one external tick and return the output node values."""
        return self.advance(inputs, self.steps_per_activation)

    def advance(self, inputs: Sequence[float], steps: int) -> list[float]:
        """Clamp ``inputs`` and integrate ``steps`` Euler steps."""
        self._check_inputs(inputs)
        if steps < 0:
            msg = "steps must be non-negative."
            raise ValueError(msg)
        state = self.state
        for slot, value in zip(self._input_slots, inputs):
            state[slot] = float(value)

        dt = self.time_step
        functions = self.activation_functions
        for _ in range(steps):
            emitted = [
                state[slot] if function is None else function(state[slot])
                for slot, function in enumerate(functions)
            ]
            updated = list(state)
            for slot in self._computed_slots:
                total = 0.0
                for src_slot, weight in self.incoming[slot]:
                    total += weight * emitted[src_slot]
                updated[slot] = state[slot] + dt * (
                    (total - state[slot]) / self.time_constants[slot]
                )
            state = updated
        self.state = state
        return self.outputs()

    def outputs(self) -> list[float]:
        """Current activated values of the output nodes, in node-id order."""
        result = []
        for slot in self._output_slots:
            function = self.activation_functions[slot]
            value = self.state[slot]
            result.append(value if function is None else function(value))
        return result


__all__ = ["CTRNNetwork"]
