"""Historical-marking assignment for structural mutations."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, SupportsInt, cast

from .genes import ConnectionGene

Signature = tuple[int, int, "int | None"]


@dataclass(frozen=True, slots=True)
class SplitInnovation:
    """Identifiers handed out for a node insertion.

    Attributes:
        node_id: Id of the hidden node placed on the split connection.
        incoming: Marking of the source -> hidden connection.
        outgoing: Marking of the hidden -> target connection.
    """

    node_id: int
    incoming: int
    outgoing: int


@dataclass(frozen=True, slots=True)
class InnovationSnapshot:
    """Serializable snapshot of the tracker counters and current dedup map.

    Attributes:
        next_innovation: The next marking that will be assigned.
        next_node_id: The next hidden node id that will be assigned.
        entries: Tuple of (source, target, split_marking, marking) rows, where
            split_marking is ``-1`` for plain connection additions.
        splits: Tuple of (split_marking, node_id) rows.
    """

    next_innovation: int
    next_node_id: int = 0
    entries: tuple[tuple[int, int, int, int], ...] = ()
    splits: tuple[tuple[int, int], ...] = ()

    def to_mapping(self) -> dict[Signature, int]:
        """Convert the entries back to a signature -> marking dictionary."""
        return {
            (in_id, out_id, None if split < 0 else split): innovation
            for in_id, out_id, split, innovation in self.entries
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "next_innovation": self.next_innovation,
            "next_node_id": self.next_node_id,
            "entries": [list(row) for row in self.entries],
            "splits": [list(row) for row in self.splits],
        }


@dataclass(slots=True)
class InnovationTracker:
    """Assigns markings so identical structural mutations share identifiers.

    Lookups and inserts are serialized through a lock so mutation can run from
    several threads against one tracker. Only the dedup map is cleared by
    :meth:`reset`; counters never go backwards.
    """

    next_innovation: int = 0
    next_node_id: int = 0
    _mapping: dict[Signature, int] = field(
        default_factory=dict,
        init=False,
        repr=False,
    )
    _splits: dict[int, int] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(
        default_factory=threading.Lock,
        init=False,
        repr=False,
        compare=False,
    )

    def __post_init__(self) -> None:
        self._ensure_non_negative(self.next_innovation, label="next_innovation")
        self._ensure_non_negative(self.next_node_id, label="next_node_id")

    def __len__(self) -> int:
        """Return the number of signatures registered this generation."""
        return len(self._mapping)

    def __contains__(self, signature: object) -> bool:
        return signature in self._mapping

    def get_or_assign(self, signature: Signature) -> int:
        """Return the marking for ``signature``, allocating one on first sight."""
        with self._lock:
            return self._get_or_assign(self._normalize_signature(signature))

    def register(self, in_node_id: int, out_node_id: int) -> int:
        """Return the marking for a plain connection addition."""
        return self.get_or_assign((in_node_id, out_node_id, None))

    def register_split(self, connection: ConnectionGene) -> SplitInnovation:
        """Return node id and markings for splitting ``connection``.

        The same connection split twice in one generation, in any genome,
        yields the same three identifiers.
        """
        split = connection.innovation
        with self._lock:
            node_id = self._splits.get(split)
            if node_id is None:
                node_id = self.next_node_id
                self.next_node_id += 1
                self._splits[split] = node_id
            incoming = self._get_or_assign((connection.in_node_id, node_id, split))
            outgoing = self._get_or_assign((node_id, connection.out_node_id, split))
        return SplitInnovation(node_id=node_id, incoming=incoming, outgoing=outgoing)

    def reserve_node_ids(self, upto: int) -> None:
        """Make sure hidden node ids start above ``upto``."""
        with self._lock:
            self.next_node_id = max(self.next_node_id, upto + 1)

    def peek(self, signature: Signature) -> int | None:
        """Return the marking for a signature if one was assigned this generation."""
        return self._mapping.get(signature)

    def items(self) -> Iterator[tuple[Signature, int]]:
        """Iterate over the signatures registered this generation."""
        return iter(self._mapping.items())

    def reset(self) -> None:
        """Clear the dedup map at a generation boundary."""
        with self._lock:
            self._mapping.clear()
            self._splits.clear()

    def to_snapshot(self) -> InnovationSnapshot:
        """Produce a snapshot suitable for persistence."""
        entries = tuple(
            sorted(
                (
                    (in_id, out_id, -1 if split is None else split, innovation)
                    for (in_id, out_id, split), innovation in self._mapping.items()
                ),
                key=lambda row: row[3],
            )
        )
        splits = tuple(sorted(self._splits.items()))
        return InnovationSnapshot(
            next_innovation=self.next_innovation,
            next_node_id=self.next_node_id,
            entries=entries,
            splits=splits,
        )

    @classmethod
    def from_snapshot(
        cls,
        snapshot: InnovationSnapshot | Mapping[str, Any],
    ) -> InnovationTracker:
        """Restore a tracker from a snapshot or snapshot-like mapping."""
        if isinstance(snapshot, InnovationSnapshot):
            next_innovation = snapshot.next_innovation
            next_node_id = snapshot.next_node_id
            entries = snapshot.entries
            splits = snapshot.splits
        else:
            try:
                next_innovation = cls._coerce_int(
                    snapshot["next_innovation"], label="next_innovation"
                )
            except KeyError as error:
                msg = f"Snapshot is missing required key: {error.args[0]}"
                raise ValueError(msg) from error
            next_node_id = cls._coerce_int(
                snapshot.get("next_node_id", 0), label="next_node_id"
            )
            entries = tuple(
                cls._coerce_row(row, size=4)
                for row in cast(Iterable[Iterable[Any]], snapshot.get("entries", ()))
            )
            splits = tuple(
                cls._coerce_row(row, size=2)
                for row in cast(Iterable[Iterable[Any]], snapshot.get("splits", ()))
            )

        tracker = cls(next_innovation=next_innovation, next_node_id=next_node_id)
        tracker._restore(
            InnovationSnapshot(
                next_innovation=next_innovation,
                next_node_id=next_node_id,
                entries=cast(tuple[tuple[int, int, int, int], ...], entries),
                splits=cast(tuple[tuple[int, int], ...], splits),
            )
        )
        return tracker

    def _get_or_assign(self, signature: Signature) -> int:
        existing = self._mapping.get(signature)
        if existing is not None:
            return existing
        innovation = self.next_innovation
        self._mapping[signature] = innovation
        self.next_innovation += 1
        return innovation

    def _restore(self, snapshot: InnovationSnapshot) -> None:
        """Restore the dedup maps ensuring invariants hold."""
        mapping = {
            self._normalize_signature(key): value
            for key, value in snapshot.to_mapping().items()
        }
        for value in mapping.values():
            self._ensure_non_negative(value, label="innovation id")
        if len(mapping) != len(set(mapping.values())):
            msg = "Duplicate innovation identifiers detected in snapshot."
            raise ValueError(msg)
        self._mapping = mapping
        self._splits = dict(snapshot.splits)
        if mapping:
            self.next_innovation = max(self.next_innovation, max(mapping.values()) + 1)
        if self._splits:
            self.next_node_id = max(self.next_node_id, max(self._splits.values()) + 1)

    @staticmethod
    def _normalize_signature(signature: Signature) -> Signature:
        in_id, out_id, split = signature
        InnovationTracker._ensure_non_negative(in_id, label="in_node_id")
        InnovationTracker._ensure_non_negative(out_id, label="out_node_id")
        if split is not None:
            InnovationTracker._ensure_non_negative(split, label="split innovation")
        return in_id, out_id, split

    @staticmethod
    def _ensure_non_negative(value: int, *, label: str) -> None:
        if value < 0:
            msg = f"{label} must be non-negative."
            raise ValueError(msg)

    @classmethod
    def _coerce_row(cls, row: Iterable[Any], *, size: int) -> tuple[int, ...]:
        converted = tuple(cls._coerce_int(part, label="snapshot value") for part in row)
        if len(converted) != size:
            msg = f"Snapshot rows must contain exactly {size} elements."
            raise ValueError(msg)
        return converted

    @staticmethod
    def _coerce_int(value: object, *, label: str) -> int:
        if isinstance(value, int):
            return value
        if isinstance(value, (str, bytes, bytearray)):
            try:
                return int(value)
            except ValueError as error:
                msg = f"{label} must be convertible to int."
                raise ValueError(msg) from error
        if hasattr(value, "__int__"):
            try:
                return int(cast(SupportsInt, value))
            except (TypeError, ValueError) as error:
                msg = f"{label} must be convertible to int."
                raise ValueError(msg) from error
        msg = f"{label} must be convertible to int."
        raise ValueError(msg)


__all__ = [
    "InnovationSnapshot",
    "InnovationTracker",
    "Signature",
    "SplitInnovation",
]
