"""Configuration loading utilities for NEAT runs."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .crossover import CrossoverConfig
from .errors import ConfigError, MissingConfig
from .evaluator import EvaluationConfig
from .mutation import (
    AddConnectionConfig,
    AddNodeConfig,
    MutationConfig,
    TimeConstantMutationConfig,
    WeightMutationConfig,
)
from .network import TopologyMode
from .population import PopulationConfig
from .reproduction import ReproductionConfig
from .species import SpeciesConfig

REQUIRED_KEYS = ("population_size", "num_inputs", "num_outputs")


@dataclass(slots=True)
class NEATConfig:
    """Flat hyperparameter bundle handing out the typed sub-configs."""

    population_size: int
    num_inputs: int
    num_outputs: int
    max_generations: int = 100
    fitness_threshold: float | None = None
    seed: int | None = None
    mode: str = "feed_forward"
    # initial population
    initial_connectivity: str = "full"
    initial_weight_sd: float = 1.0
    output_activation: str = "sigmoid"
    # speciation
    c1: float = 1.0
    c2: float = 1.0
    c3: float = 0.4
    compatibility_threshold: float = 3.0
    target_species: int | None = None
    species_adjust_period: int = 0
    adjust_rate: float = 0.1
    min_compatibility_threshold: float = 0.1
    max_compatibility_threshold: float = 10.0
    # reproduction
    elitism: int = 0
    survival_threshold: float = 1.0
    max_stagnation: int = 15
    interspecies_mating_rate: float = 0.001
    crossover_rate: float = 0.75
    disable_inherit_rate: float = 0.75
    average_weights: bool = False
    # mutation
    weight_mutation_rate: float = 0.8
    weight_perturb_rate: float = 0.8
    weight_perturb_sd: float = 0.5
    weight_reset_rate: float = 0.1
    weight_limit: float | None = None
    add_connection_rate: float = 0.05
    add_node_rate: float = 0.03
    toggle_enable_rate: float = 0.01
    max_connection_attempts: int = 32
    hidden_activation: str = "sigmoid"
    initial_time_constant: float = 1.0
    time_constant_mutate_rate: float = 0.0
    time_constant_perturb_sd: float = 0.1
    time_constant_min: float = 0.01
    time_constant_max: float = 10.0
    # evaluation
    time_step: float = 0.1
    steps_per_activation: int = 10
    error_fitness: float = float("-inf")
    pass_rng: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> NEATConfig:
        """Build a config from a flat mapping.

        Unknown keys are ignored.

        Raises:
            MissingConfig: A required key is absent.
            ConfigError: A value has the wrong type or is out of range.
        """
        for key in REQUIRED_KEYS:
            if data.get(key) is None:
                raise MissingConfig(key)
        values: dict[str, Any] = {}
        for spec in fields(cls):
            if spec.name not in data:
                continue
            converter = _CONVERTERS.get(str(spec.type))
            if converter is None:
                msg = f"No converter for field {spec.name} ({spec.type})."
                raise ConfigError(msg)
            try:
                values[spec.name] = converter(data[spec.name])
            except (TypeError, ValueError) as error:
                msg = f"Invalid value for {spec.name!r}: {data[spec.name]!r}"
                raise ConfigError(msg) from error
        config = cls(**values)
        config.validate()
        return config

    def validate(self) -> None:
        """Build every sub-config so range errors surface immediately."""
        self.population_config()
        self.species_config()
        self.reproduction_config()
        self.mutation_config()
        self.crossover_config()
        self.evaluation_config()
        if self.max_generations <= 0:
            msg = "max_generations must be positive."
            raise ConfigError(msg)

    @property
    def topology_mode(self) -> TopologyMode:
        try:
            return TopologyMode.coerce(self.mode)
        except ValueError as error:
            raise ConfigError(str(error)) from error

    def population_config(self) -> PopulationConfig:
        return PopulationConfig(
            population_size=self.population_size,
            num_inputs=self.num_inputs,
            num_outputs=self.num_outputs,
            initial_connectivity=self.initial_connectivity,
            initial_weight_sd=self.initial_weight_sd,
            output_activation=self.output_activation,
        )

    def species_config(self) -> SpeciesConfig:
        return SpeciesConfig(
            c1=self.c1,
            c2=self.c2,
            c3=self.c3,
            compatibility_threshold=self.compatibility_threshold,
            target_species=self.target_species,
            species_adjust_period=self.species_adjust_period,
            adjust_rate=self.adjust_rate,
            min_compatibility_threshold=self.min_compatibility_threshold,
            max_compatibility_threshold=self.max_compatibility_threshold,
        )

    def reproduction_config(self) -> ReproductionConfig:
        return ReproductionConfig(
            elitism=self.elitism,
            survival_threshold=self.survival_threshold,
            max_stagnation=self.max_stagnation,
            interspecies_mating_rate=self.interspecies_mating_rate,
            crossover_rate=self.crossover_rate,
        )

    def mutation_config(self) -> MutationConfig:
        return MutationConfig(
            weight=WeightMutationConfig(
                perturb_rate=self.weight_perturb_rate,
                perturb_sd=self.weight_perturb_sd,
                reset_rate=self.weight_reset_rate,
                weight_limit=self.weight_limit,
            ),
            add_connection=AddConnectionConfig(
                max_attempts=self.max_connection_attempts,
            ),
            add_node=AddNodeConfig(
                activation=self.hidden_activation,
                time_constant=self.initial_time_constant,
            ),
            time_constant=TimeConstantMutationConfig(
                mutate_rate=self.time_constant_mutate_rate,
                perturb_sd=self.time_constant_perturb_sd,
                minimum=self.time_constant_min,
                maximum=self.time_constant_max,
            ),
            weight_mutation_rate=self.weight_mutation_rate,
            add_connection_rate=self.add_connection_rate,
            add_node_rate=self.add_node_rate,
            toggle_enable_rate=self.toggle_enable_rate,
            mode=self.topology_mode,
        )

    def crossover_config(self) -> CrossoverConfig:
        return CrossoverConfig(
            disable_inherit_rate=self.disable_inherit_rate,
            average_weights=self.average_weights,
        )

    def evaluation_config(self) -> EvaluationConfig:
        return EvaluationConfig(
            mode=self.topology_mode,
            time_step=self.time_step,
            steps_per_activation=self.steps_per_activation,
            num_inputs=self.num_inputs,
            num_outputs=self.num_outputs,
            error_fitness=self.error_fitness,
            seed=self.seed,
            pass_rng=self.pass_rng,
        )


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "on", "1"):
            return True
        if lowered in ("false", "no", "off", "0"):
            return False
    if isinstance(value, int):
        return bool(value)
    msg = f"Cannot interpret {value!r} as a boolean."
    raise ValueError(msg)


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        msg = "Booleans are not accepted as integers."
        raise TypeError(msg)
    if isinstance(value, float) and not value.is_integer():
        msg = f"Expected an integer, got {value!r}."
        raise ValueError(msg)
    return int(value)


def _optional(converter: Callable[[Any], Any]) -> Callable[[Any], Any]:
    def convert(value: Any) -> Any:
        return None if value is None else converter(value)

    return convert


_CONVERTERS: dict[str, Callable[[Any], Any]] = {
    "int": _to_int,
    "float": float,
    "bool": _to_bool,
    "str": str,
    "int | None": _optional(_to_int),
    "float | None": _optional(float),
}


@dataclass(slots=True)
class RunConfig:
    """File-level settings for one training run."""

    neat_config: Path
    output_dir: Path = Path("runs")
    workers: int = 1
    timeout_s: float | None = None
    resume: Path | None = None
    save_every: int | None = None

    def resolve(self, base_path: Path) -> RunConfig:
        return RunConfig(
            neat_config=(base_path / self.neat_config).resolve(),
            output_dir=(base_path / self.output_dir).resolve(),
            workers=self.workers,
            timeout_s=self.timeout_s,
            resume=(base_path / self.resume).resolve() if self.resume else None,
            save_every=self.save_every,
        )


def _load_yaml(path: Path) -> Mapping[str, Any]:
    with Path(path).open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, Mapping):
        msg = f"Expected mapping in YAML file: {path}"
        raise ConfigError(msg)
    return data


def load_neat_config(path: Path) -> NEATConfig:
    """Read a flat YAML mapping of hyperparameters."""
    return NEATConfig.from_mapping(_load_yaml(path))


def load_run_config(path: Path) -> RunConfig:
    """Read a run description; relative paths resolve against its directory."""
    path = Path(path)
    data = _load_yaml(path)
    neat_path = data.get("neat_config")
    if neat_path is None:
        raise MissingConfig("neat_config")
    workers = _to_int(data.get("workers", 1))
    if workers <= 0:
        msg = "workers must be positive."
        raise ConfigError(msg)
    run = RunConfig(
        neat_config=Path(neat_path),
        output_dir=Path(data.get("output_dir", "runs")),
        workers=workers,
        timeout_s=(
            float(data["timeout_s"])
            if data.get("timeout_s") is not None
            else None
        ),
        resume=(Path(data["resume"]) if data.get("resume") else None),
        save_every=(_to_int(data["save_every"]) if data.get("save_every") else None),
    )
    return run.resolve(path.parent)


__all__ = [
    "REQUIRED_KEYS",
    "NEATConfig",
    "RunConfig",
    "load_neat_config",
    "load_run_config",
]
