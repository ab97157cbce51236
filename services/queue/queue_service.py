"""In-memory generation task registry with a background polling loop."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple
from services.engine.client import ComfyUIClient
from services.queue.retry_policy import RetryPolicy
from services.queue.storage import OutputStore
from services.queue.strategies import CheckResult, get_strategy
from services.queue.tasks import GenerationTask
from shared.exceptions import (
    GenerationError,
    InvalidTransitionError,
    OutputRetrievalError,
    TaskCheckTimeoutError,
)
from shared.logging_config import task_context
from shared.settings import QueueSettings
from shared.types import ACTIVE_STATUSES, GenerationStatus, QueueStatus

TaskObserver = Callable[[GenerationTask], None]


@dataclass
class PollState:
    """Per-task polling bookkeeping, guarded by the service lock"""
    last_progress_at: float
    poll_failures: int = 0
    retrieval_failures: int = 0
    next_check_at: float = 0.0
    in_flight: bool = False


class GenerationQueueService:
    """Sole owner and mutator of generation task state"""

    def __init__(
        self,
        client: ComfyUIClient,
        settings: Optional[QueueSettings] = None,
        output_store: Optional[OutputStore] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.settings = settings or QueueSettings.from_env()
        self.output_store = output_store or OutputStore(self.settings.output_dir)
        self.poll_retry_policy = RetryPolicy(max_attempts=self.settings.max_poll_failures, retry_engine_errors=True)
        self.retrieval_retry_policy = RetryPolicy(max_attempts=self.settings.max_output_retrieval_attempts)
        self._clock = clock

        self._lock = threading.Lock()
        self._tasks: Dict[str, GenerationTask] = {}
        self._poll_state: Dict[str, PollState] = {}
        self._observers: List[TaskObserver] = []

        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.worker_threads,
            thread_name_prefix="generation-worker",
        )
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # Registry operations

    def queue_task(self, task: GenerationTask, wait_for_submission: bool = True) -> str:
        """Registers a pending task and submits it to the engine"""
        if task.status != GenerationStatus.PENDING:
            raise GenerationError(f"Only pending tasks can be queued (status {task.status.value})", task_id=task.id)

        owned = task.snapshot()
        with self._lock:
            if owned.id in self._tasks:
                raise GenerationError(f"Task {owned.id} is already registered", task_id=owned.id)
            self._tasks[owned.id] = owned
            self._poll_state[owned.id] = PollState(last_progress_at=self._clock())
            snapshot = owned.snapshot()

        logging.info(
            "Task registered",
            extra={"task_id": owned.id, "generation_type": owned.type.value, "task_name": owned.name}
        )
        self._notify(snapshot)

        if wait_for_submission:
            self._submit(owned.id)
        else:
            self._executor.submit(self._submit, owned.id)
        return owned.id

    def get_task(self, task_id: str) -> Optional[GenerationTask]:
        with self._lock:
            task = self._tasks.get(task_id)
            return task.snapshot() if task else None

    def get_all_tasks(self) -> List[GenerationTask]:
        """Snapshots of every task, newest first"""
        with self._lock:
            snapshots = [task.snapshot() for task in self._tasks.values()]
        return sorted(snapshots, key=lambda t: t.created_at, reverse=True)

    def get_active_tasks(self) -> List[GenerationTask]:
        return [task for task in self.get_all_tasks() if task.status in ACTIVE_STATUSES]

    def cancel_task(self, task_id: str) -> bool:
        """Cancels locally at once; the remote cancel is best effort"""
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None or task.is_terminal:
                return False
            previous_status = task.status
            task.mark_cancelled()
            prompt_id = task.prompt_id
            snapshot = task.snapshot()

        logging.info(
            "Task cancelled",
            extra={"task_id": task_id, "prompt_id": prompt_id, "previous_status": previous_status.value}
        )
        self._notify(snapshot)

        if prompt_id:
            self._executor.submit(self._cancel_remote, task_id, prompt_id)
        return True

    def clear_completed_tasks(self) -> int:
        """Removes terminal tasks; returns how many were removed"""
        with self._lock:
            terminal_ids = [task_id for task_id, task in self._tasks.items() if task.is_terminal]
            for task_id in terminal_ids:
                del self._tasks[task_id]
                self._poll_state.pop(task_id, None)

        if terminal_ids:
            logging.info("Cleared finished tasks", extra={"removed_count": len(terminal_ids)})
        return len(terminal_ids)

    # Notifications

    def subscribe(self, observer: TaskObserver) -> None:
        with self._lock:
            if observer not in self._observers:
                self._observers.append(observer)

    def unsubscribe(self, observer: TaskObserver) -> None:
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)

    def _notify(self, snapshot: GenerationTask) -> None:
        # Called without holding the lock so observers may call back into the service
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(snapshot.snapshot())
            except Exception:
                logging.exception("Task observer failed", extra={"task_id": snapshot.id})

    # Submission

    def _submit(self, task_id: str) -> None:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None or task.status != GenerationStatus.PENDING:
                return
            snapshot = task.snapshot()

        label = snapshot.type.value.capitalize()
        with task_context(task_id):
            try:
                prompt_id = get_strategy(snapshot.type).submit(snapshot, self.client)
            except GenerationError as e:
                logging.warning(
                    "Task submission failed",
                    extra={"task_id": task_id, "error_type": type(e).__name__, "error": e.message}
                )
                self._fail(task_id, f"{label} generation failed: {e.message}")
                return
            except Exception as e:
                logging.exception("Unexpected error submitting task", extra={"task_id": task_id})
                self._fail(task_id, f"{label} generation failed: {e}")
                return

            if not prompt_id:
                self._fail(task_id, f"Failed to submit {snapshot.type.value} workflow to the engine - no prompt ID received.")
                return

            orphaned = False
            with self._lock:
                task = self._tasks.get(task_id)
                if task is None or task.status != GenerationStatus.PENDING:
                    orphaned = True
                else:
                    task.mark_submitted(prompt_id)
                    self._poll_state[task_id].last_progress_at = self._clock()
                    snapshot = task.snapshot()

            if orphaned:
                # Cancelled or cleared while the submission was in flight
                logging.info(
                    "Task no longer pending after submission; cancelling remote prompt",
                    extra={"task_id": task_id, "prompt_id": prompt_id}
                )
                self._cancel_remote(task_id, prompt_id)
                return

            logging.info("Task queued on engine", extra={"task_id": task_id, "prompt_id": prompt_id})
            self._notify(snapshot)

    def _cancel_remote(self, task_id: str, prompt_id: str) -> None:
        try:
            cancelled = self.client.cancel_job(prompt_id)
        except Exception:
            logging.exception("Remote cancel raised", extra={"task_id": task_id, "prompt_id": prompt_id})
            return
        logging.info(
            "Remote cancel finished",
            extra={"task_id": task_id, "prompt_id": prompt_id, "remote_cancelled": cancelled}
        )

    def _fail(self, task_id: str, error_message: str) -> None:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None or task.is_terminal:
                return
            task.mark_failed(error_message)
            snapshot = task.snapshot()

        logging.warning("Task failed", extra={"task_id": task_id, "error_message": error_message})
        self._notify(snapshot)

    # Polling

    def start(self) -> None:
        """Starts the background polling thread"""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="generation-queue-poller", daemon=True)
        self._thread.start()
        logging.info(
            "Generation queue polling started",
            extra={"poll_interval_seconds": self.settings.poll_interval_seconds}
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logging.info("Generation queue polling stopped")

    def close(self) -> None:
        self.stop()
        self._executor.shutdown(wait=False)

    def __enter__(self) -> "GenerationQueueService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _run(self) -> None:
        if self._stop_event.wait(self.settings.start_delay_seconds):
            return
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception:
                # One bad cycle must not end polling for every other task
                logging.exception("Polling cycle failed")
            self._stop_event.wait(self.settings.poll_interval_seconds)

    def poll_once(self) -> int:
        """Runs one polling cycle; returns how many task checks were scheduled"""
        self._expire_stale_tasks()

        now = self._clock()
        due: List[GenerationTask] = []
        with self._lock:
            for task_id, task in self._tasks.items():
                if task.status not in (GenerationStatus.QUEUED, GenerationStatus.PROCESSING):
                    continue
                state = self._poll_state[task_id]
                if state.in_flight or state.next_check_at > now:
                    continue
                state.in_flight = True
                due.append(task.snapshot())

        if not due:
            return 0

        try:
            queue_status = self.client.get_queue_status()
        except Exception as e:
            logging.warning(
                "Could not read engine queue",
                extra={"error_type": type(e).__name__, "error": str(e), "task_count": len(due)}
            )
            for snapshot in due:
                self._release(snapshot.id)
                self._record_failure(snapshot.id, e)
            return len(due)

        futures = {self._executor.submit(self._check_task, snapshot, queue_status): snapshot for snapshot in due}
        _, not_done = wait(futures, timeout=self.settings.check_timeout_seconds)
        for future in not_done:
            snapshot = futures[future]
            logging.warning(
                "Task check timed out",
                extra={"task_id": snapshot.id, "timeout_seconds": self.settings.check_timeout_seconds}
            )
            self._record_failure(
                snapshot.id,
                TaskCheckTimeoutError(
                    f"Status check exceeded {self.settings.check_timeout_seconds:g}s",
                    task_id=snapshot.id,
                ),
            )
        return len(due)

    def _check_task(self, snapshot: GenerationTask, queue_status: QueueStatus) -> None:
        with task_context(snapshot.id):
            try:
                result = get_strategy(snapshot.type).check_completion(
                    snapshot, self.client, queue_status, self.output_store
                )
            except OutputRetrievalError as e:
                self._record_failure(snapshot.id, e, retrieval=True)
            except Exception as e:
                self._record_failure(snapshot.id, e)
            else:
                self._apply_result(snapshot.id, result)
            finally:
                self._release(snapshot.id)

    def _release(self, task_id: str) -> None:
        with self._lock:
            state = self._poll_state.get(task_id)
            if state is not None:
                state.in_flight = False

    def _apply_result(self, task_id: str, result: CheckResult) -> None:
        snapshot = None
        with self._lock:
            task = self._tasks.get(task_id)
            state = self._poll_state.get(task_id)
            if task is None or state is None or task.is_terminal:
                return

            state.poll_failures = 0
            state.next_check_at = 0.0

            if result.awaiting_output:
                logging.debug("Job left the engine queue; waiting for history", extra={"task_id": task_id})
            elif result.status == GenerationStatus.COMPLETED:
                task.mark_completed(result.generated_file_path)
                state.retrieval_failures = 0
                snapshot = task.snapshot()
            elif result.status == GenerationStatus.FAILED:
                task.mark_failed(result.error_message)
                snapshot = task.snapshot()
            else:
                try:
                    changed = task.mark_waiting(result.status, result.queue_position)
                except InvalidTransitionError:
                    # The engine may briefly report a running job as pending again
                    changed = False
                if changed:
                    state.last_progress_at = self._clock()
                    snapshot = task.snapshot()

        if snapshot is not None:
            logging.info(
                "Task status changed",
                extra={
                    "task_id": task_id,
                    "status": snapshot.status.value,
                    "queue_position": snapshot.queue_position
                }
            )
            self._notify(snapshot)

    def _record_failure(self, task_id: str, error: Exception, retrieval: bool = False) -> None:
        policy = self.retrieval_retry_policy if retrieval else self.poll_retry_policy
        snapshot = None
        with self._lock:
            task = self._tasks.get(task_id)
            state = self._poll_state.get(task_id)
            if task is None or state is None or task.is_terminal:
                return

            if retrieval:
                state.retrieval_failures += 1
                attempt = state.retrieval_failures
            else:
                state.poll_failures += 1
                attempt = state.poll_failures

            should_retry, delay = policy.should_retry(task_id, attempt, error)
            if should_retry:
                state.next_check_at = self._clock() + (delay or 0.0)
            else:
                task.mark_failed(self._failure_message(error, retrieval))
                snapshot = task.snapshot()
                task_error = policy.to_task_error(error)

        if snapshot is not None:
            logging.warning(
                "Task failed after check errors",
                extra={"task_id": task_id, "task_error": task_error.to_dict()}
            )
            self._notify(snapshot)

    def _failure_message(self, error: Exception, retrieval: bool) -> str:
        detail = error.message if isinstance(error, GenerationError) else str(error)
        if retrieval:
            return f"Could not retrieve generated output: {detail}"
        return f"Lost track of the engine job: {detail}"

    def _expire_stale_tasks(self) -> None:
        ceiling = self.settings.stale_task_timeout_seconds
        if not ceiling:
            return

        now = self._clock()
        expired: List[Tuple[str, GenerationTask]] = []
        with self._lock:
            for task_id, task in self._tasks.items():
                if task.is_terminal:
                    continue
                state = self._poll_state[task_id]
                if now - state.last_progress_at > ceiling:
                    task.mark_failed(f"Timed out after {ceiling:g}s without progress from the engine")
                    expired.append((task_id, task.snapshot()))

        for task_id, snapshot in expired:
            logging.warning("Task timed out", extra={"task_id": task_id, "stale_after_seconds": ceiling})
            self._notify(snapshot)
