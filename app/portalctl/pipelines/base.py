"""Staged pipeline framework.

A pipeline runs a fixed, ordered list of stages against one input. Stages
run strictly one after another; each may block on file or network I/O,
which they push off the event loop with ``asyncio.to_thread``.

Cleanup is all-or-nothing. When a stage fails (or the run is cancelled)
the pipeline discards whatever it already placed in shared locations,
removes its scratch directory and re-raises the original exception.
Cleanup errors are logged and never replace that exception. A successful
run removes its scratch directory as well before returning.
"""

import logging
import shutil
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Generic, TypeVar

from portalctl.core.paths import ensure_work_dir
from portalctl.models.pipeline import PipelineKind, PipelineRun

logger = logging.getLogger(__name__)

T = TypeVar("T")

StageListener = Callable[[str], None]


@dataclass(frozen=True, slots=True)
class Stage:
    """One named step of a pipeline.

    Attributes:
        name: Stage name, recorded once the stage completes.
        run: Coroutine function performing the step.
    """

    name: str
    run: Callable[[], Awaitable[None]]


class Pipeline(ABC, Generic[T]):
    """Base class for staged operations.

    Subclasses define ``kind``, ``stages()`` and ``result()``, and override
    ``discard_partial()`` when a stage writes outside the scratch directory.

    Example:
        >>> pipeline = PackageImportPipeline(Path("app.ipa"), store)
        >>> result = await pipeline.run()
    """

    kind: PipelineKind

    def __init__(
        self,
        input_ref: str,
        work_root: Path | None = None,
        on_stage: StageListener | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            input_ref: Description of the input, used in logs.
            work_root: Parent of the scratch directory.
                       Default: ~/.cache/portalctl/work
            on_stage: Called with each stage name before it starts.
        """
        self._input_ref = input_ref
        self._work_root = work_root
        self._on_stage = on_stage
        self._workdir: Path | None = None
        self.last_run: PipelineRun | None = None

    @property
    def workdir(self) -> Path:
        """Scratch directory of the current run, created on first use."""
        if self._workdir is None:
            if self._work_root is not None:
                root = self._work_root
                root.mkdir(parents=True, exist_ok=True)
            else:
                root = ensure_work_dir()
            self._workdir = Path(tempfile.mkdtemp(prefix=f"{self.kind.value}-", dir=root))
        return self._workdir

    @abstractmethod
    def stages(self) -> list[Stage]:
        """Ordered stages of this pipeline."""

    @abstractmethod
    def result(self) -> T:
        """Build the value returned after all stages succeeded."""

    def discard_partial(self) -> None:
        """Remove output a failed run left outside the scratch directory."""

    async def run(self) -> T:
        """Execute all stages in order.

        Returns:
            The pipeline's result.

        Raises:
            Exception: Whatever the failing stage raised, unchanged.
            asyncio.CancelledError: If the run was cancelled.
        """
        run = PipelineRun(kind=self.kind, input_ref=self._input_ref)
        self.last_run = run
        logger.info("Starting %s for %s", self.kind.value, self._input_ref)

        try:
            for stage in self.stages():
                if self._on_stage is not None:
                    self._on_stage(stage.name)
                logger.debug("%s: running stage %s", self.kind.value, stage.name)
                await stage.run()
                run.completed_stages.append(stage.name)
            result = self.result()
        except BaseException as e:
            run.error = e
            run.workdir = self._workdir
            logger.warning(
                "%s failed after stages %s: %s",
                self.kind.value,
                run.completed_stages or "(none)",
                str(e) or type(e).__name__,
            )
            self._cleanup(failed=True)
            raise

        run.workdir = self._workdir
        run.succeeded = True
        self._cleanup(failed=False)
        logger.info("Finished %s for %s", self.kind.value, self._input_ref)
        return result

    def _cleanup(self, failed: bool) -> None:
        """Best-effort removal of partial output and the scratch directory."""
        if failed:
            try:
                self.discard_partial()
            except Exception as e:
                logger.warning("Could not discard partial output of %s: %s", self.kind.value, e)

        if self._workdir is not None:
            try:
                shutil.rmtree(self._workdir)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Could not remove scratch directory %s: %s", self._workdir, e)
            self._workdir = None
