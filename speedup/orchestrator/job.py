"""Job state machine driving one speed-up run through primary and fallback attempts.

Coordinates a single job at a time with:
- Readiness and in-flight gating before any state change
- Strictly sequential write -> execute -> read against the engine
- One automatic fallback (video-only plan) after any primary failure
- Output publication through the ResourceLifecycleManager on success only
- Progress updates from the ProgressTranslator while a job is attached
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional, Union

from speedup.config import settings
from speedup.engine.base import EngineError, MediaEngine
from speedup.engine.lifecycle import EngineLifecycleManager, NotReady
from speedup.orchestrator.state import can_transition, is_terminal, status_message
from speedup.pipeline import filters
from speedup.pipeline.progress import ProgressTranslator
from speedup.schemas.job import Attempt, Job, JobError, JobStatus
from speedup.schemas.media import MediaAsset, ResourceSlot, VideoOnly, WithAudio
from speedup.services.assets import ensure_accepted, output_filename
from speedup.services.resources import ResourceLifecycleManager

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Error processing video"

# Terminal status reached when the given attempt succeeds
SUCCESS_STATUS = {
    Attempt.PRIMARY: JobStatus.SUCCEEDED,
    Attempt.FALLBACK: JobStatus.PARTIALLY_SUCCEEDED,
}


class JobInFlight(Exception):
    """Raised when a job operation is requested while another job is processing."""


class NoAssetSelected(ValueError):
    """Raised when submitting without an asset and nothing has been selected."""


class ExecTimeout(Exception):
    """The execute timeout elapsed; the job ends CANCELLED without a fallback."""


class JobStateMachine:
    """Sole owner and mutator of the active Job.

    Args:
        engine_manager: Gatekeeper for the engine handle
        resources: Owner of preview/output handles
        translator: Progress translator; one is created and subscribed if omitted
        speed_factor: Speed-up factor (default: settings.job.speed_factor)
        exec_timeout: Seconds allowed per execute call (default:
            settings.job.exec_timeout_seconds, None = no limit)
    """

    def __init__(
        self,
        engine_manager: EngineLifecycleManager,
        resources: ResourceLifecycleManager,
        translator: Optional[ProgressTranslator] = None,
        *,
        speed_factor: Optional[float] = None,
        exec_timeout: Optional[float] = None,
    ):
        self._engine_manager = engine_manager
        self._resources = resources
        if translator is None:
            translator = ProgressTranslator()
            engine_manager.subscribe("progress", translator.handle_progress)
            engine_manager.subscribe("log", translator.handle_log)
        self._translator = translator
        self.speed_factor = speed_factor or settings.job.speed_factor
        self.exec_timeout = exec_timeout if exec_timeout is not None else settings.job.exec_timeout_seconds
        self.input_name = settings.job.input_name
        self.output_name = settings.job.output_name

        self._job: Optional[Job] = None
        self._selected: Optional[MediaAsset] = None
        self._task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def job(self) -> Optional[Job]:
        return self._job

    @property
    def selected(self) -> Optional[MediaAsset]:
        return self._selected

    @property
    def status(self) -> JobStatus:
        if self._job is not None:
            return self._job.status
        return JobStatus.READY if self._selected is not None else JobStatus.IDLE

    @property
    def in_flight(self) -> bool:
        return self._job is not None and not is_terminal(self._job.status)

    @property
    def progress_percent(self) -> int:
        return self._job.progress_percent if self._job is not None else 0

    @property
    def status_message(self) -> str:
        return status_message(
            self._engine_manager.state,
            self.status,
            attempt=self._job.attempt if self._job is not None else None,
            engine_error=self._engine_manager.error,
        )

    @property
    def last_log(self) -> Optional[str]:
        return self._translator.last_log

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def select(self, asset: MediaAsset) -> MediaAsset:
        """Make ``asset`` the current selection and publish its preview handle.

        Any previous preview and result handles are revoked.

        Raises:
            JobInFlight: If a job is processing
            UnsupportedMediaType: If the asset's MIME type is not accepted
        """
        if self.in_flight:
            raise JobInFlight("Cannot select a new file while a job is processing")
        ensure_accepted(asset.mime_type)

        self._check_transition(JobStatus.READY)
        asset.preview_handle = self._resources.publish(
            ResourceSlot.INPUT_PREVIEW, asset.data, asset.mime_type, filename=asset.name
        )
        self._resources.revoke(ResourceSlot.OUTPUT)
        self._job = None
        self._selected = asset
        self._translator.reset()
        logger.info(f"Selected {asset.name} ({asset.size} bytes, {asset.mime_type})")
        return asset

    def start(self, asset: Optional[MediaAsset] = None) -> "asyncio.Task[Job]":
        """Create the job synchronously and schedule its processing.

        Must be called from a running event loop.

        Raises:
            NotReady: If the engine is not READY (no state change)
            JobInFlight: If another job is processing (no state change)
            NoAssetSelected: If no asset is given or selected
            UnsupportedMediaType: If an explicit asset's MIME type is not accepted

        An explicit asset other than the current selection is selected first,
        so it gets the same MIME check and preview handle as ``select``. Any
        previous result handle is revoked before the new job starts.
        """
        if not self._engine_manager.is_ready:
            raise NotReady(f"Engine is not ready (state={self._engine_manager.state.value})")
        if self.in_flight:
            raise JobInFlight(f"Job {self._job.id} is already processing")

        if asset is not None and asset is not self._selected:
            self.select(asset)
        asset = self._selected
        if asset is None:
            raise NoAssetSelected("No media asset selected")

        engine = self._engine_manager.engine
        self._check_transition(JobStatus.PROCESSING)
        self._resources.revoke(ResourceSlot.OUTPUT)
        job = Job(input_asset=asset)
        self._job = job
        logger.info(f"Job {job.id}: starting for {asset.name}")

        self._task = asyncio.create_task(self._process(engine, job))
        self._task.add_done_callback(lambda task: self._on_task_done(job, task))
        return self._task

    async def submit(self, asset: Optional[MediaAsset] = None) -> Job:
        """Run a job to completion and return it.

        Engine failures never escape; inspect ``job.status`` and ``job.error``.
        Raises NotReady / JobInFlight / NoAssetSelected / UnsupportedMediaType
        exactly like ``start``.
        """
        return await self.start(asset)

    def cancel(self) -> bool:
        """Cancel the processing job. Returns False if nothing was processing."""
        if not self.in_flight or self._task is None or self._task.done():
            return False
        logger.info(f"Job {self._job.id}: cancellation requested")
        self._task.cancel()
        return True

    async def wait(self) -> Optional[Job]:
        """Wait for the current job task to finish without raising its outcome."""
        if self._task is not None:
            await asyncio.wait({self._task})
        return self._job

    def reset(self) -> int:
        """Return to IDLE, revoking every resource handle.

        Engine state is left untouched.

        Returns:
            Number of handles revoked

        Raises:
            JobInFlight: If a job is processing
        """
        if self.in_flight:
            raise JobInFlight("Cannot reset while a job is processing")

        revoked = self._resources.revoke_all()
        self._job = None
        self._selected = None
        self._translator.reset()
        logger.info(f"Reset to idle ({revoked} handles revoked)")
        return revoked

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def _attempt_plans(self) -> list[tuple[Attempt, Union[WithAudio, VideoOnly]]]:
        return [
            (Attempt.PRIMARY, filters.primary_plan(self.speed_factor)),
            (Attempt.FALLBACK, filters.fallback_plan(self.speed_factor)),
        ]

    async def _process(self, engine: MediaEngine, job: Job) -> Job:
        self._translator.reset()
        self._translator.attach(lambda percent: self._on_progress(job, percent))
        try:
            await self._run_attempts(engine, job)
        except asyncio.CancelledError:
            job.error = JobError(attempt=job.attempt, message="Cancelled")
            self._finish(job, JobStatus.CANCELLED)
            raise
        finally:
            self._translator.detach()
            await self._clear_namespace(engine)
        return job

    async def _run_attempts(self, engine: MediaEngine, job: Job) -> None:
        try:
            await engine.write_file(self.input_name, job.input_asset.data)
        except EngineError as e:
            logger.error(f"Job {job.id}: writing input failed: {e}")
            job.error = JobError(attempt=job.attempt, message=GENERIC_FAILURE, detail=str(e))
            self._finish(job, JobStatus.FAILED)
            return

        for attempt, plan in self._attempt_plans():
            if attempt is not Attempt.PRIMARY:
                self._check_transition(JobStatus.PROCESSING)
                self._translator.reset()
                job.progress_percent = 0
            job.attempt = attempt
            job.plans.append(plan)
            logger.info(f"Job {job.id}: {attempt.value} attempt with {plan.kind} plan")

            try:
                data = await self._execute(engine, plan)
            except ExecTimeout as e:
                job.error = JobError(attempt=attempt, message="Cancelled", detail=str(e))
                self._finish(job, JobStatus.CANCELLED)
                return
            except EngineError as e:
                detail = _describe(e)
                job.errors.append(JobError(attempt=attempt, message=GENERIC_FAILURE, detail=detail))
                logger.warning(f"Job {job.id}: {attempt.value} attempt failed: {detail}")
                continue

            self._publish_output(job, data)
            if job.status is JobStatus.PROCESSING:
                job.progress_percent = 100
                self._finish(job, SUCCESS_STATUS[attempt])
            return

        job.error = JobError(
            attempt=job.attempt,
            message=GENERIC_FAILURE,
            detail=job.errors[-1].detail if job.errors else "",
        )
        self._finish(job, JobStatus.FAILED)

    async def _execute(self, engine: MediaEngine, plan: Union[WithAudio, VideoOnly]) -> bytes:
        argv = filters.build(plan, self.input_name, self.output_name)
        run = engine.exec(argv, time_scale=filters.time_scale(plan))
        if self.exec_timeout is None:
            await run
        else:
            try:
                await asyncio.wait_for(run, self.exec_timeout)
            except asyncio.TimeoutError:
                raise ExecTimeout(f"Execute timed out after {self.exec_timeout}s") from None
        return await engine.read_file(self.output_name)

    def _publish_output(self, job: Job, data: bytes) -> None:
        name = output_filename(job.input_asset.name)
        mime_type = settings.job.output_mime_type
        try:
            handle = self._resources.publish(ResourceSlot.OUTPUT, data, mime_type, filename=name)
        except (OSError, ValueError) as e:
            logger.error(f"Job {job.id}: publishing output failed: {e}")
            job.error = JobError(attempt=job.attempt, message=GENERIC_FAILURE, detail=str(e))
            self._finish(job, JobStatus.FAILED)
            return
        job.output_asset = MediaAsset(name=name, mime_type=mime_type, data=data, preview_handle=handle)

    async def _clear_namespace(self, engine: MediaEngine) -> None:
        for name in (self.input_name, self.output_name):
            try:
                await engine.delete_file(name)
            except EngineError as e:
                logger.warning(f"Could not remove {name} from engine namespace: {e}")

    def _on_task_done(self, job: Job, task: asyncio.Task) -> None:
        # A task cancelled before its first step never enters _process
        if task.cancelled() and job is self._job and not is_terminal(job.status):
            job.error = JobError(attempt=job.attempt, message="Cancelled")
            self._finish(job, JobStatus.CANCELLED)

    def _on_progress(self, job: Job, percent: int) -> None:
        if job.status is JobStatus.PROCESSING:
            job.progress_percent = percent

    def _finish(self, job: Job, status: JobStatus) -> None:
        self._check_transition(status)
        job.status = status
        job.completed_at = datetime.utcnow()
        if status is JobStatus.FAILED and job.error is not None:
            logger.error(f"Job {job.id}: failed: {job.error.detail or job.error.message}")
        else:
            logger.info(f"Job {job.id}: {status.value}")

    def _check_transition(self, target: JobStatus) -> None:
        current = self.status
        if not can_transition(current, target):
            raise RuntimeError(f"Illegal job transition {current.value} -> {target.value}")


def _describe(error: EngineError) -> str:
    """Raw engine error text for diagnostics, including stderr tail when present."""
    tail = getattr(error, "stderr_tail", "")
    return f"{error}\n{tail}" if tail else str(error)
