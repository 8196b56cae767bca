"""NEAT neuroevolution: genomes, speciation, reproduction and phenotypes."""

from __future__ import annotations

from .activations import DEFAULT_ACTIVATIONS
from .config import NEATConfig, RunConfig, load_neat_config, load_run_config
from .crossover import CrossoverConfig, crossover
from .ctrnn import CTRNNetwork
from .errors import (
    ConfigError,
    CyclicTopology,
    DanglingNodeReference,
    DuplicateConnection,
    DuplicateNode,
    EvaluationError,
    InputSizeMismatch,
    MissingConfig,
    NEATError,
    OutputSizeMismatch,
    PhaseError,
    StructuralError,
)
from .evaluator import (
    EvaluationConfig,
    EvaluationStats,
    ParallelEvaluator,
    SyncEvaluator,
)
from .genes import ConnectionGene, NodeGene, NodeType
from .genome import Genome
from .innovations import InnovationSnapshot, InnovationTracker, SplitInnovation
from .metrics import MetricsRow, MetricsWriter
from .mutation import (
    AddConnectionConfig,
    AddNodeConfig,
    MutationConfig,
    MutationReport,
    Mutator,
    TimeConstantMutationConfig,
    WeightMutationConfig,
)
from .network import (
    FeedForwardNetwork,
    TopologyMode,
    build_network,
    compute_feedforward_layers,
)
from .persistence import (
    TrainingCheckpoint,
    load_checkpoint,
    load_genome,
    load_snapshot,
    save_checkpoint,
    save_genome,
    save_snapshot,
)
from .population import (
    GenerationPhase,
    GenerationReport,
    Population,
    PopulationConfig,
    create_initial_genomes,
)
from .reporters import EventLogger, format_report
from .reproduction import (
    Reproducer,
    ReproductionConfig,
    ReproductionPlan,
    compute_offspring_allocation,
)
from .species import (
    Species,
    SpeciesConfig,
    SpeciesManager,
    compatibility_distance,
)
from .training import evolve, run_training

__all__ = [
    "ConnectionGene",
    "NodeGene",
    "NodeType",
    "Genome",
    "InnovationSnapshot",
    "InnovationTracker",
    "SplitInnovation",
    "FeedForwardNetwork",
    "CTRNNetwork",
    "TopologyMode",
    "DEFAULT_ACTIVATIONS",
    "build_network",
    "compute_feedforward_layers",
    "WeightMutationConfig",
    "AddConnectionConfig",
    "AddNodeConfig",
    "TimeConstantMutationConfig",
    "MutationConfig",
    "MutationReport",
    "Mutator",
    "CrossoverConfig",
    "crossover",
    "Species",
    "SpeciesConfig",
    "SpeciesManager",
    "compatibility_distance",
    "ReproductionConfig",
    "ReproductionPlan",
    "Reproducer",
    "compute_offspring_allocation",
    "GenerationPhase",
    "GenerationReport",
    "Population",
    "PopulationConfig",
    "create_initial_genomes",
    "EvaluationConfig",
    "EvaluationStats",
    "SyncEvaluator",
    "ParallelEvaluator",
    "NEATConfig",
    "RunConfig",
    "load_neat_config",
    "load_run_config",
    "TrainingCheckpoint",
    "save_checkpoint",
    "load_checkpoint",
    "save_snapshot",
    "load_snapshot",
    "save_genome",
    "load_genome",
    "MetricsRow",
    "MetricsWriter",
    "EventLogger",
    "format_report",
    "evolve",
    "run_training",
    "NEATError",
    "StructuralError",
    "CyclicTopology",
    "DanglingNodeReference",
    "DuplicateConnection",
    "DuplicateNode",
    "ConfigError",
    "MissingConfig",
    "EvaluationError",
    "InputSizeMismatch",
    "OutputSizeMismatch",
    "PhaseError",
]
