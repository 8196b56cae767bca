from __future__ import annotations

import csv
from pathlib import Path

from neatbrain.genes import NodeGene, NodeType
from neatbrain.genome import Genome
from neatbrain.metrics import MetricsRow, MetricsWriter
from neatbrain.population import GenerationReport
from neatbrain.reporters import EventLogger, format_report


def _report(**overrides: object) -> GenerationReport:
    genome = Genome(
        nodes={
            0: NodeGene(0, NodeType.INPUT, "identity"),
            1: NodeGene(1, NodeType.OUTPUT, "identity"),
        },
        connections={},
    )
    values: dict[str, object] = {
        "generation": 3,
        "population_size": 10,
        "species_count": 2,
        "best_fitness": 1.5,
        "mean_fitness": 0.75,
        "median_fitness": 0.5,
        "best_genome": genome,
        "species_sizes": {0: 6, 1: 4},
    }
    values.update(overrides)
    return GenerationReport(**values)  # type: ignore[arg-type]


def test_format_report_summarizes_generation() -> None:
    line = format_report(_report())

    assert line == "Generation 3: best=1.500 mean=0.750 median=0.500 species=2"


def test_format_report_flags_removals_failures_and_reseed() -> None:
    line = format_report(
        _report(removed_species=(4, 7), evaluation_failures=2, reseeded=True)
    )

    assert line.endswith(" removed=[4,7] failures=2 reseeded")


def test_event_logger_appends_generation_and_errors(tmp_path: Path) -> None:
    path = tmp_path / "logs" / "events.log"
    report = _report(evaluation_failures=1, evaluation_errors=("genome 2 failed",))

    with EventLogger(path) as logger:
        logger.log("Training started")
        logger.log_generation(report)
    with EventLogger(path) as logger:
        logger.log("Training resumed")

    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 4
    assert lines[0].endswith(" Training started")
    assert "Generation 3:" in lines[1]
    assert lines[2].endswith("  genome 2 failed")
    assert lines[3].endswith(" Training resumed")


def test_metrics_writer_appends_to_existing_file(tmp_path: Path) -> None:
    path = tmp_path / "metrics.csv"

    with MetricsWriter(path) as writer:
        writer.append(MetricsRow.from_report(_report(), eval_time_s=0.25))
    with MetricsWriter(path) as writer:
        writer.append(MetricsRow.from_report(_report(generation=4), eval_time_s=0.5))

    with path.open("r", encoding="utf-8") as handle:
        rows = list(csv.DictReader(handle))
    assert [row["generation"] for row in rows] == ["3", "4"]
    assert rows[0]["eval_time_s"] == "0.25"
    assert rows[1]["evaluation_failures"] == "0"
