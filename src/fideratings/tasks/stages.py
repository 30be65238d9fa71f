"""
Stage registry and runner for scheduled update runs.

A scheduled run (e.g. on the first of every month) is a list of named
stages executed in order: import this month's lists, then refresh player
activity. Each stage returns a StageResult; a failing stage is recorded
and the remaining stages still run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from time import perf_counter
from typing import Any, Callable, Literal, Optional

from fideratings.db.session import Database

logger = logging.getLogger(__name__)

StageStatus = Literal["success", "failed", "partial", "skipped"]


@dataclass(frozen=True)
class StageContext:
    """Runtime context passed to each stage handler."""

    run_id: str
    stage_name: str
    database: Database
    today: date
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class StageResult:
    """Normalized result returned by a stage handler."""

    stage_name: str
    status: StageStatus
    started_at: datetime
    ended_at: datetime
    metrics: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def duration_s(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage_name": self.stage_name,
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "duration_s": self.duration_s,
            "metrics": self.metrics,
            "error": self.error,
        }


StageRunner = Callable[[StageContext], StageResult]


@dataclass(frozen=True)
class StageDefinition:
    """Registered stage metadata and runner implementation."""

    name: str
    runner: StageRunner
    description: str = ""
    enabled_by_default: bool = True


class StageRegistry:
    """In-memory registry of named update stages, in registration order."""

    def __init__(self) -> None:
        self._stages: dict[str, StageDefinition] = {}

    def register(self, stage: StageDefinition) -> None:
        if stage.name in self._stages:
            raise ValueError(f"Stage already registered: {stage.name}")
        self._stages[stage.name] = stage

    def get(self, stage_name: str) -> StageDefinition:
        try:
            return self._stages[stage_name]
        except KeyError as exc:
            raise KeyError(f"Unknown stage: {stage_name}") from exc

    def names(self) -> list[str]:
        return list(self._stages)

    def default_stage_names(self) -> list[str]:
        return [name for name, stage in self._stages.items() if stage.enabled_by_default]

    def resolve(
        self,
        include: list[str] | None = None,
        skip: set[str] | None = None,
    ) -> list[StageDefinition]:
        names = include or self.default_stage_names()
        skipped = skip or set()
        return [self.get(name) for name in names if name not in skipped]


def run_stages(
    stages: list[StageDefinition],
    *,
    run_id: str,
    database: Database,
    today: Optional[date] = None,
    options: Optional[dict[str, Any]] = None,
) -> list[StageResult]:
    """
    Execute stages in order, converting exceptions into failed results.

    Infrastructure errors inside a stage are recorded like any other
    failure; the caller decides the process exit code from the results.
    """
    today = today or date.today()
    results: list[StageResult] = []

    for stage in stages:
        ctx = StageContext(
            run_id=run_id,
            stage_name=stage.name,
            database=database,
            today=today,
            options=dict(options or {}),
        )
        logger.info("[%s] Stage %s starting", run_id, stage.name)
        started_at = datetime.utcnow()
        started_perf = perf_counter()
        try:
            result = stage.runner(ctx)
        except Exception as exc:
            logger.exception("[%s] Stage %s failed", run_id, stage.name)
            result = StageResult(
                stage_name=stage.name,
                status="failed",
                started_at=started_at,
                ended_at=datetime.utcnow(),
                error=f"{exc.__class__.__name__}: {exc}",
            )
        logger.info(
            "[%s] Stage %s finished: %s in %.1fs",
            run_id, stage.name, result.status, perf_counter() - started_perf,
        )
        results.append(result)

    return results
