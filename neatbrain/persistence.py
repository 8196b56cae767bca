"""Snapshot and checkpoint helpers for saving and resuming evolution."""

from __future__ import annotations

import pickle
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from random import Random
from typing import Any

import yaml

from .genome import Genome
from .population import Population


@dataclass(slots=True)
class TrainingCheckpoint:
    """Serializable representation of a training session.

    The population is stored as its plain-data snapshot together with the
    state of its random generator, so a resumed run continues exactly.
    """

    generation: int
    population_snapshot: dict[str, Any]
    rng_state: tuple[Any, ...]
    best_genome: Genome | None
    best_fitness: float

    @classmethod
    def capture(cls, population: Population) -> TrainingCheckpoint:
        return cls(
            generation=population.generation,
            population_snapshot=population.to_snapshot(),
            rng_state=population.rng.getstate(),
            best_genome=(
                None if population.best_genome is None else population.best_genome.copy()
            ),
            best_fitness=population.champion_fitness,
        )

    def rng(self) -> Random:
        """A generator positioned where the checkpointed run left off."""
        rng = Random()
        rng.setstate(self.rng_state)
        return rng


def save_checkpoint(path: Path, checkpoint: TrainingCheckpoint) -> None:
    """Persist a training checkpoint to disk."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("wb") as handle:
        pickle.dump(checkpoint, handle, protocol=pickle.HIGHEST_PROTOCOL)


def load_checkpoint(path: Path) -> TrainingCheckpoint:
    """Load a previously saved training checkpoint."""
    source = Path(path)
    with source.open("rb") as handle:
        data: Any = pickle.load(handle)
    if not isinstance(data, TrainingCheckpoint):
        msg = f"Invalid checkpoint payload in {source}"
        raise ValueError(msg)
    return data


def _dump_yaml(path: Path, payload: Mapping[str, Any]) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(dict(payload), handle, sort_keys=False)


def _load_yaml(path: Path) -> Mapping[str, Any]:
    source = Path(path)
    with source.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if not isinstance(data, Mapping):
        msg = f"Expected mapping in YAML file: {source}"
        raise ValueError(msg)
    return data


def save_snapshot(path: Path, population: Population) -> None:
    """Write the population snapshot as YAML."""
    _dump_yaml(path, population.to_snapshot())


def load_snapshot(path: Path) -> Mapping[str, Any]:
    """Read a snapshot written by :func:`save_snapshot`.

    Pass the result to :meth:`Population.from_snapshot`.
    """
    return _load_yaml(path)


def save_genome(path: Path, genome: Genome) -> None:
    """Write a single genome as YAML."""
    _dump_yaml(path, genome.to_dict())


def load_genome(path: Path) -> Genome:
    """Read a genome written by :func:`save_genome`."""
    return Genome.from_dict(_load_yaml(path))


__all__ = [
    "TrainingCheckpoint",
    "load_checkpoint",
    "load_genome",
    "load_snapshot",
    "save_checkpoint",
    "save_genome",
    "save_snapshot",
]
