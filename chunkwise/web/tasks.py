"""
Asynchronous task helpers for long-running background jobs (document translation).
"""

from __future__ import annotations

import copy
import threading
import time
import uuid
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

from chunkwise.ai.service import TranslatorService
from chunkwise.chunking.orchestrator import TranslateChunkFn, TranslationOrchestrator
from chunkwise.chunking.types import ChunkConfig, ChunkProgress, ContentTree, PipelineResult
from chunkwise.logger import get_logger

logger = get_logger(__name__)

FINISHED_STATES = ("completed", "partial", "failed", "cancelled")
RETRYABLE_STATES = ("partial", "failed", "cancelled")

# Fields kept out of the JSON view of a job
_INTERNAL_FIELDS = ("document", "config", "pipeline_result")


@dataclass
class JobState:
    """In-memory representation of an asynchronous job."""

    job_id: str
    document: ContentTree
    config: Dict[str, Any]
    chunk_config: Dict[str, Any] = field(default_factory=dict)
    translation_rules: Optional[str] = None
    project_context: Optional[str] = None
    glossary: Optional[str] = None
    cancel_requested: bool = False
    state: str = "pending"  # pending|running|completed|partial|failed|cancelled
    attempts: int = 0
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    progress: Dict[str, Any] = field(default_factory=dict)
    progress_history: List[Dict[str, Any]] = field(default_factory=list)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    last_update: float = field(default_factory=time.time)
    pipeline_result: Optional[PipelineResult] = None

    def request_cancel(self):
        """Mark this job as requested for cancellation."""
        self.cancel_requested = True
        self.last_update = time.time()

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            f.name: copy.deepcopy(getattr(self, f.name))
            for f in fields(self)
            if f.name not in _INTERNAL_FIELDS
        }
        for key in ("created_at", "started_at", "finished_at", "last_update"):
            if payload.get(key) is not None:
                payload[key] = float(payload[key])
        return payload


_jobs: Dict[str, JobState] = {}
_jobs_lock = threading.Lock()
_JOB_RETENTION_SECONDS = 600  # Retain job info for 10 minutes after completion


def build_translator(config: Dict[str, Any]) -> TranslateChunkFn:
    """Return the translate_chunk callable used by background jobs."""
    return TranslatorService(config).translate_chunk


def create_translation_job(
    document: ContentTree,
    config: Dict[str, Any],
    chunk_config: Optional[ChunkConfig] = None,
    translation_rules: Optional[str] = None,
    project_context: Optional[str] = None,
    glossary: Optional[str] = None,
) -> JobState:
    """
    Create and launch an asynchronous translation job for a document.

    Args:
        document: Content tree to translate.
        config: Full configuration dict; its translator section picks the provider.
        chunk_config: Chunk sizing; defaults to the config's chunking section.
        translation_rules: Optional rules passed to every chunk.
        project_context: Optional context passed to every chunk.
        glossary: Optional glossary passed to every chunk.

    Returns:
        JobState for the new job (already registered and running in background).
    """
    job_id = uuid.uuid4().hex
    job_state = JobState(
        job_id=job_id,
        document=copy.deepcopy(document),
        config=config,
        chunk_config=(chunk_config or ChunkConfig.from_dict(config.get("chunking"))).to_dict(),
        translation_rules=translation_rules,
        project_context=project_context,
        glossary=glossary,
    )

    with _jobs_lock:
        _cleanup_jobs_locked()
        _jobs[job_id] = job_state

    _start_worker(job_state, retry=False)
    logger.info(f"Translation job {job_id} started ({len(document.get('content', []))} top-level nodes)")
    return job_state


def retry_translation_job(job_id: str) -> Optional[JobState]:
    """
    Rerun the failed chunks of a finished job.

    Returns:
        The job, now running again, or None if it has nothing to retry.
    """
    with _jobs_lock:
        job = _jobs.get(job_id)
        if not job or job.state not in RETRYABLE_STATES:
            return None
        previous = job.pipeline_result
        if previous is None or not previous.failed_chunk_indices:
            return None
        job.state = "pending"
        job.cancel_requested = False
        job.finished_at = None
        job.error = None
        job.last_update = time.time()

    _start_worker(job, retry=True)
    logger.info(f"Translation job {job_id} retrying chunks {previous.failed_chunk_indices}")
    return job


def get_job(job_id: str) -> Optional[JobState]:
    """Fetch a job by ID (if still retained)."""
    with _jobs_lock:
        job = _jobs.get(job_id)
        if job and job.finished_at and (time.time() - job.finished_at) > _JOB_RETENTION_SECONDS:
            # Expired; remove
            _jobs.pop(job_id, None)
            return None
        return job


def cancel_job(job_id: str) -> bool:
    """
    Request cancellation of a running job.

    Args:
        job_id: The job ID to cancel.

    Returns:
        True if job was found and cancellation requested, False otherwise.
    """
    with _jobs_lock:
        job = _jobs.get(job_id)
        if not job:
            return False
        if job.state in FINISHED_STATES:
            return False  # Already finished
        job.request_cancel()
        logger.info(f"Cancellation requested for job {job_id}")
        return True


def wait_for_job(job_id: str, timeout: float = 30.0, interval: float = 0.02) -> Optional[JobState]:
    """Block until the job finishes or the timeout passes; returns the job."""
    deadline = time.time() + timeout
    while True:
        job = get_job(job_id)
        if job is None or job.state in FINISHED_STATES or time.time() >= deadline:
            return job
        time.sleep(interval)


def serialize_job(job: JobState) -> Dict[str, Any]:
    """Convert JobState into JSON-safe dict."""
    with _jobs_lock:
        return job.to_dict()


def _start_worker(job: JobState, retry: bool):
    thread = threading.Thread(
        target=_run_translation_job,
        args=(job, retry),
        name=f"translation-job-{job.job_id}",
        daemon=True,
    )
    thread.start()


def _run_translation_job(job: JobState, retry: bool = False):
    """Worker function executed in a background thread."""
    with _jobs_lock:
        job.state = "running"
        job.attempts += 1
        job.started_at = time.time()
        job.last_update = job.started_at
    try:
        translate_chunk = build_translator(job.config)
        orchestrator = TranslationOrchestrator(ChunkConfig.from_dict(job.chunk_config))

        def on_progress(progress: ChunkProgress):
            with _jobs_lock:
                serialized = _serialize_progress(progress)
                job.progress = serialized  # Latest state
                job.progress_history.append(serialized)
                job.last_update = time.time()

        def check_cancel() -> bool:
            """Check if job cancellation was requested."""
            with _jobs_lock:
                return job.cancel_requested

        context = {
            "translation_rules": job.translation_rules,
            "project_context": job.project_context,
            "glossary": job.glossary,
        }
        if retry:
            previous = job.pipeline_result
            result = orchestrator.retry_failed_chunks(
                previous, previous.chunks, translate_chunk, on_progress, check_cancel, **context
            )
        else:
            result = orchestrator.run(job.document, translate_chunk, on_progress, check_cancel, **context)

        with _jobs_lock:
            job.pipeline_result = result
            job.result = result.to_dict()
            job.error = result.error
            job.state = _final_state(result)
            job.finished_at = time.time()
            job.last_update = job.finished_at
        logger.info(
            f"Translation job {job.job_id} finished (state={job.state}, "
            f"translated={result.successful_chunks}/{result.total_chunks}, "
            f"failed={result.failed_chunk_indices})"
        )
    except Exception as exc:
        error_type = type(exc).__name__
        error_message = str(exc)
        with _jobs_lock:
            job.state = "failed"
            job.error = f"{error_type}: {error_message}"
            job.finished_at = time.time()
            job.last_update = job.finished_at
        logger.exception(f"Translation job {job.job_id} failed: {error_type}: {error_message}")


def _final_state(result: PipelineResult) -> str:
    if result.cancelled:
        return "cancelled"
    if not result.success:
        return "failed"
    return "partial" if result.failed_chunk_indices else "completed"


def _cleanup_jobs_locked():
    """Remove completed jobs that exceeded retention period (call with lock held)."""
    now = time.time()
    expired = [
        job_id
        for job_id, job in _jobs.items()
        if job.finished_at and (now - job.finished_at) > _JOB_RETENTION_SECONDS
    ]
    for job_id in expired:
        _jobs.pop(job_id, None)


def _serialize_progress(progress: ChunkProgress) -> Dict[str, Any]:
    return {
        "completed": progress.completed,
        "total": progress.total,
        "current_chunk_index": progress.current_chunk_index,
        "status": progress.status.value,
    }
