"""Fixed lookup table of node activation functions."""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping

ActivationFunction = Callable[[float], float]
ActivationMap = Mapping[str, ActivationFunction]


def _sigmoid(x: float) -> float:
    if x >= 0:
        z = math.exp(-x)
        return 1.0 / (1.0 + z)
    z = math.exp(x)
    return z / (1.0 + z)


def _steepened_sigmoid(x: float) -> float:
    # Slope used by the original NEAT experiments.
    return _sigmoid(4.9 * x)


def _gauss(x: float) -> float:
    x = max(-3.4, min(3.4, x))
    return math.exp(-5.0 * x * x)


def _clamped(x: float) -> float:
    return max(-1.0, min(1.0, x))


DEFAULT_ACTIVATIONS: dict[str, ActivationFunction] = {
    "identity": lambda x: x,
    "sigmoid": _sigmoid,
    "neat_sigmoid": _steepened_sigmoid,
    "tanh": math.tanh,
    "relu": lambda x: x if x > 0.0 else 0.0,
    "gauss": _gauss,
    "sin": math.sin,
    "abs": abs,
    "clamped": _clamped,
}


def normalize_activation_name(name: str) -> str:
    return name.strip().lower()


def resolve_activations(
    names: Mapping[int, str],
    activation_functions: ActivationMap | None = None,
) -> dict[int, ActivationFunction]:
    """Map node ids to callables, failing early on unknown tags."""
    lookup = (
        DEFAULT_ACTIVATIONS
        if activation_functions is None
        else {
            normalize_activation_name(name): fn
            for name, fn in activation_functions.items()
        }
    )
    resolved: dict[int, ActivationFunction] = {}
    for node_id, name in names.items():
        function = lookup.get(normalize_activation_name(name))
        if function is None:
            msg = f"Unknown activation function: {name!r}"
            raise ValueError(msg)
        resolved[node_id] = function
    return resolved


__all__ = [
    "ActivationFunction",
    "ActivationMap",
    "DEFAULT_ACTIVATIONS",
    "normalize_activation_name",
    "resolve_activations",
]
