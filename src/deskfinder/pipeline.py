"""Sequential indexing pipeline.

Stages run one after another on the calling thread. A stage that raises is
recorded in the report and the next stage still runs; cancellation is only
checked between stages.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

LOGGER = logging.getLogger(__name__)

ProgressSink = Callable[[str, str, int], None]

TASK_INDEXING = "indexing"


@dataclass(slots=True)
class Stage:
    name: str
    run: Callable[[], Any]


@dataclass(slots=True)
class PipelineReport:
    results: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    completed: List[str] = field(default_factory=list)
    cancelled: bool = False
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.errors and not self.cancelled


class IndexingPipeline:
    def __init__(self, stages: List[Stage], progress: Optional[ProgressSink] = None) -> None:
        self.stages = list(stages)
        self.progress = progress
        self._cancel = threading.Event()

    def cancel(self) -> None:
        """Stop before the next stage; the running stage finishes."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def emit(self, message: str, percent: int) -> None:
        if self.progress is None:
            return
        try:
            self.progress(TASK_INDEXING, message, percent)
        except Exception as exc:
            LOGGER.debug("Progress sink failed: %s", exc)

    def run(self) -> PipelineReport:
        report = PipelineReport()
        started = time.perf_counter()
        total = len(self.stages)

        for position, stage in enumerate(self.stages):
            if self._cancel.is_set():
                LOGGER.info("Pipeline cancelled before %s", stage.name)
                report.cancelled = True
                break
            self.emit(f"{stage.name}...", position * 100 // max(total, 1))
            LOGGER.info(">>> %s", stage.name)
            try:
                report.results[stage.name] = stage.run()
            except Exception as exc:
                LOGGER.exception("Stage %s failed", stage.name)
                report.errors[stage.name] = str(exc) or exc.__class__.__name__
                continue
            report.completed.append(stage.name)

        report.elapsed = time.perf_counter() - started
        self.emit("Complete", 100)
        LOGGER.info(
            "Pipeline finished in %.1fs (%d/%d stages, %d errors)",
            report.elapsed,
            len(report.completed),
            total,
            len(report.errors),
        )
        return report
