"""Species management: compatibility clustering and stagnation accounting."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .distance import compatibility_distance
from .errors import ConfigError
from .genome import Genome


@dataclass(frozen=True, slots=True)
class SpeciesConfig:
    """Configuration parameters controlling speciation behaviour."""

    c1: float = 1.0
    c2: float = 1.0
    c3: float = 0.4
    compatibility_threshold: float = 3.0
    target_species: int | None = None
    species_adjust_period: int = 0
    adjust_rate: float = 0.1
    min_compatibility_threshold: float = 0.1
    max_compatibility_threshold: float = 10.0

    def __post_init__(self) -> None:
        if self.c1 < 0 or self.c2 < 0 or self.c3 < 0:
            msg = "Compatibility coefficients must be non-negative."
            raise ConfigError(msg)
        if self.compatibility_threshold <= 0:
            msg = "compatibility_threshold must be positive."
            raise ConfigError(msg)
        if self.target_species is not None and self.target_species <= 0:
            msg = "target_species must be positive."
            raise ConfigError(msg)
        if self.species_adjust_period < 0:
            msg = "species_adjust_period must be >= 0."
            raise ConfigError(msg)
        if self.species_adjust_period and self.target_species is None:
            msg = "target_species is required when species_adjust_period is set."
            raise ConfigError(msg)
        if self.adjust_rate <= 0:
            msg = "adjust_rate must be positive."
            raise ConfigError(msg)
        if self.min_compatibility_threshold <= 0:
            msg = "min_compatibility_threshold must be positive."
            raise ConfigError(msg)
        if self.min_compatibility_threshold >= self.max_compatibility_threshold:
            msg = "min_compatibility_threshold must be < max_compatibility_threshold."
            raise ConfigError(msg)


@dataclass(slots=True)
class Species:
    """Tracks a group of genetically similar genomes.

    ``members`` holds indices into the population's genome sequence.
    ``stagnation`` counts generations since ``best_fitness`` last improved.
    """

    id: int
    representative: Genome
    created_generation: int
    members: list[int] = field(default_factory=list)
    adjusted_fitness: float = 0.0
    best_fitness: float = float("-inf")
    stagnation: int = 0
    last_improved_generation: int = field(init=False)

    def __post_init__(self) -> None:
        self.last_improved_generation = self.created_generation

    def __len__(self) -> int:
        return len(self.members)

    def clear_members(self) -> None:
        """Remove all member indices."""
        self.members.clear()

    def record_fitness(self, fitnesses: Iterable[float], generation: int) -> bool:
        """Update best-ever fitness and the stagnation counter.

        Returns:
            Whether the species improved on its best-ever fitness.
        """
        best = max(
            (value for value in fitnesses if not math.isnan(value)),
            default=float("-inf"),
        )
        if best > self.best_fitness:
            self.best_fitness = best
            self.last_improved_generation = generation
            self.stagnation = 0
            return True
        self.stagnation += 1
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "representative": self.representative.to_dict(),
            "created_generation": self.created_generation,
            "members": list(self.members),
            "adjusted_fitness": self.adjusted_fitness,
            "best_fitness": self.best_fitness,
            "stagnation": self.stagnation,
            "last_improved_generation": self.last_improved_generation,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Species:
        species = cls(
            id=int(data["id"]),
            representative=Genome.from_dict(data["representative"]),
            created_generation=int(data["created_generation"]),
            members=[int(member) for member in data.get("members", ())],
            adjusted_fitness=float(data.get("adjusted_fitness", 0.0)),
            best_fitness=float(data.get("best_fitness", float("-inf"))),
            stagnation=int(data.get("stagnation", 0)),
        )
        species.last_improved_generation = int(
            data.get("last_improved_generation", species.created_generation)
        )
        return species


@dataclass(slots=True)
class SpeciesManager:
    """Maintains species representatives and membership assignments."""

    config: SpeciesConfig
    compatibility_threshold: float = field(init=False)
    _species: dict[int, Species] = field(init=False, default_factory=dict)
    _next_species_id: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        self.compatibility_threshold = self.config.compatibility_threshold

    def __len__(self) -> int:
        return len(self._species)

    def __contains__(self, species_id: object) -> bool:
        return species_id in self._species

    def distance(self, left: Genome, right: Genome) -> float:
        """Compute compatibility distance using the configured coefficients."""
        return compatibility_distance(
            left,
            right,
            c1=self.config.c1,
            c2=self.config.c2,
            c3=self.config.c3,
        )

    def adjust_threshold(self, generation: int, species_count: int) -> None:
        """Nudge the compatibility threshold towards the target species count."""
        if self.config.species_adjust_period == 0 or self.config.target_species is None:
            return
        if generation % self.config.species_adjust_period != 0:
            return
        if species_count == 0:
            return

        if species_count < self.config.target_species:
            self.compatibility_threshold = max(
                self.config.min_compatibility_threshold,
                self.compatibility_threshold - self.config.adjust_rate,
            )
        elif species_count > self.config.target_species:
            self.compatibility_threshold = min(
                self.config.max_compatibility_threshold,
                self.compatibility_threshold + self.config.adjust_rate,
            )

    def speciate(
        self,
        genomes: Sequence[Genome],
        generation: int,
    ) -> tuple[Species, ...]:
        """Assign every genome to exactly one species.

        Genomes are visited in order and join the first species, in creation
        order, whose representative is closer than the threshold. Otherwise a
        new species is founded with the genome as representative. Species left
        without members disappear. Surviving species take their first member
        as the representative for the next generation.
        """
        if not genomes:
            self._species.clear()
            return ()

        for species in self._species.values():
            species.clear_members()

        for index, genome in enumerate(genomes):
            matched = self._find_species(genome)
            if matched is None:
                matched = self._create_species(genome, generation)
            matched.members.append(index)
            genome.species_id = matched.id

        for species_id in [sid for sid, item in self._species.items() if not item.members]:
            del self._species[species_id]

        for species in self._species.values():
            species.representative = genomes[species.members[0]].copy()
            fitnesses = [genomes[member].fitness for member in species.members]
            if all(value is not None for value in fitnesses):
                species.record_fitness(
                    (value for value in fitnesses if value is not None), generation
                )

        return self.species()

    def species(self) -> tuple[Species, ...]:
        """Return the tracked species in creation order."""
        return tuple(self._species[species_id] for species_id in sorted(self._species))

    def get(self, species_id: int) -> Species:
        return self._species[species_id]

    def remove(self, species_ids: Iterable[int]) -> None:
        """Drop species, e.g. after they go extinct."""
        for species_id in species_ids:
            self._species.pop(species_id, None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "compatibility_threshold": self.compatibility_threshold,
            "next_species_id": self._next_species_id,
            "species": [species.to_dict() for species in self.species()],
        }

    def restore(self, data: Mapping[str, Any]) -> None:
        """Load species state previously produced by :meth:`to_dict`."""
        self.compatibility_threshold = float(
            data.get("compatibility_threshold", self.config.compatibility_threshold)
        )
        species = [Species.from_dict(raw) for raw in data.get("species", ())]
        self._species = {item.id: item for item in species}
        next_id = int(data.get("next_species_id", 0))
        if self._species:
            next_id = max(next_id, max(self._species) + 1)
        self._next_species_id = next_id

    def _find_species(self, genome: Genome) -> Species | None:
        for species_id in sorted(self._species):
            species = self._species[species_id]
            if self.distance(genome, species.representative) < self.compatibility_threshold:
                return species
        return None

    def _create_species(self, genome: Genome, generation: int) -> Species:
        species_id = self._next_species_id
        self._next_species_id += 1
        species = Species(
            id=species_id,
            representative=genome.copy(),
            created_generation=generation,
        )
        self._species[species_id] = species
        return species


__all__ = [
    "Species",
    "SpeciesConfig",
    "SpeciesManager",
    "compatibility_distance",
]
