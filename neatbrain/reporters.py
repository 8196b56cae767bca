"""Text event log and console summaries for evolution runs."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from .population import GenerationReport


def format_report(report: GenerationReport) -> str:
    """One-line summary of a generation."""
    line = (
        f"Generation {report.generation}: best={report.best_fitness:.3f} "
        f"mean={report.mean_fitness:.3f} median={report.median_fitness:.3f} "
        f"species={report.species_count}"
    )
    if report.removed_species:
        removed = ",".join(str(species_id) for species_id in report.removed_species)
        line += f" removed=[{removed}]"
    if report.evaluation_failures:
        line += f" failures={report.evaluation_failures}"
    if report.reseeded:
        line += " reseeded"
    return line


class EventLogger:
    """Append-only text logger with ISO timestamps."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = self._path.open("a", encoding="utf-8")

    def __enter__(self) -> EventLogger:
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()

    def log(self, message: str) -> None:
        """Append a timestamped message to the log."""
        timestamp = datetime.now(timezone.utc).isoformat()
        self._handle.write(f"{timestamp} {message}\n")
        self._handle.flush()

    def log_generation(self, report: GenerationReport) -> None:
        self.log(format_report(report))
        for error in report.evaluation_errors:
            self.log(f"  {error}")

    def close(self) -> None:
        """Close the underlying file handle."""
        if not self._handle.closed:
            self._handle.close()

    @property
    def path(self) -> Path:
        """Return the backing log path."""
        return self._path


__all__ = ["EventLogger", "format_report"]
