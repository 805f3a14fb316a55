"""buildtree - An incremental build-task orchestrator."""

__version__ = "0.1.0"

from buildtree.dependencies import DependencyResolver, FreshnessReport
from buildtree.errors import (
    BuildError,
    ConfigError,
    CycleError,
    DuplicateTaskError,
    RecipeError,
    RecordNotFoundError,
    SubprocessFailure,
    TaskBodyFailure,
    UnknownTaskError,
)
from buildtree.executor import (
    Scheduler,
    TaskContext,
    TaskOutcome,
    TaskRunResult,
    TaskStatus,
    TraceEntry,
)
from buildtree.freshness import (
    ContentHashFreshnessPolicy,
    FreshnessPolicy,
    MtimeFreshnessPolicy,
    make_freshness_policy,
)
from buildtree.graph import BuildGraph, Task, TaskKind
from buildtree.reporter import Reporter
from buildtree.state import DependencyKey, ModificationRecord, ModificationStore

__all__ = [
    "__version__",
    "BuildError",
    "BuildGraph",
    "ConfigError",
    "ContentHashFreshnessPolicy",
    "CycleError",
    "DependencyKey",
    "DependencyResolver",
    "DuplicateTaskError",
    "FreshnessPolicy",
    "FreshnessReport",
    "ModificationRecord",
    "ModificationStore",
    "MtimeFreshnessPolicy",
    "RecipeError",
    "RecordNotFoundError",
    "Reporter",
    "Scheduler",
    "SubprocessFailure",
    "Task",
    "TaskBodyFailure",
    "TaskContext",
    "TaskKind",
    "TaskOutcome",
    "TaskRunResult",
    "TaskStatus",
    "TraceEntry",
    "UnknownTaskError",
    "make_freshness_policy",
]
