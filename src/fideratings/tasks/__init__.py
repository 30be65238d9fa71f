"""Task runtime utilities: import locks and the scheduled-run stage registry."""

from fideratings.tasks.locks import (
    PLAYER_WRITES_LOCK,
    advisory_lock_key,
    import_lock_name,
    named_lock,
    postgres_advisory_lock,
)
from fideratings.tasks.stages import (
    StageContext,
    StageDefinition,
    StageRegistry,
    StageResult,
    run_stages,
)

__all__ = [
    "PLAYER_WRITES_LOCK",
    "StageContext",
    "StageDefinition",
    "StageRegistry",
    "StageResult",
    "advisory_lock_key",
    "import_lock_name",
    "named_lock",
    "postgres_advisory_lock",
    "run_stages",
]
