# client/status_poller.py
"""
Client side of the evaluation status protocol.

After a recording is uploaded the client polls GET /status?fileId=<jobId>
until the execution is complete, then fetches GET /results/<jobId>.
Observers subscribe per job id, so several uploads can be tracked at once.
"""
import os
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import requests
from dotenv import load_dotenv

load_dotenv()

API_BASE                = os.getenv("API_BASE", "http://localhost:3000")
POLL_INTERVAL_SECS      = float(os.getenv("POLL_INTERVAL_SECS", "5"))
POLL_MAX_ATTEMPTS       = int(os.getenv("POLL_MAX_ATTEMPTS", "60"))
POLL_INITIAL_DELAY_SECS = float(os.getenv("POLL_INITIAL_DELAY_SECS", "3"))
HTTP_TIMEOUT_SECS       = float(os.getenv("HTTP_TIMEOUT_SECS", "10"))


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    ERROR = "error"


class PollTimeoutError(Exception):
    """Polling budget exhausted before the job finished"""

    def __init__(self, job_id: str, attempts: int):
        super().__init__(f"job {job_id} still running after {attempts} status checks")
        self.job_id = job_id
        self.attempts = attempts


class StatusCheckError(Exception):
    """Status endpoint answered with something other than 200/404"""


@dataclass
class StatusUpdate:
    job_id: str
    status: JobStatus
    attempt: int = 0
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    detail: Dict[str, Any] = field(default_factory=dict)


Listener = Callable[[StatusUpdate], None]


class StatusNotifier:
    """Status listeners keyed by job id"""

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {}
        self._lock = threading.Lock()

    def subscribe(self, job_id: str, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.setdefault(job_id, []).append(listener)

        def unsubscribe():
            with self._lock:
                listeners = self._listeners.get(job_id, [])
                if listener in listeners:
                    listeners.remove(listener)
                if not listeners:
                    self._listeners.pop(job_id, None)

        return unsubscribe

    def notify(self, update: StatusUpdate) -> None:
        with self._lock:
            listeners = list(self._listeners.get(update.job_id, []))
        for listener in listeners:
            listener(update)

    def listener_count(self, job_id: str) -> int:
        with self._lock:
            return len(self._listeners.get(job_id, []))


class EvaluationStatusClient:
    """Poll the status API, one loop per job

    requests.Session is not thread-safe, so each polling thread gets its own
    session from session_factory. A session passed in explicitly is shared by
    every thread and is only safe for one job at a time.
    """

    def __init__(self, api_base: str = None, session: requests.Session = None,
                 session_factory: Callable[[], requests.Session] = requests.Session,
                 notifier: StatusNotifier = None,
                 interval: float = None, max_attempts: int = None, initial_delay: float = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.api_base = (api_base or API_BASE).rstrip("/")
        self._shared_session = session
        self._session_factory = session_factory
        self._local = threading.local()
        self.notifier = notifier or StatusNotifier()
        self.interval = POLL_INTERVAL_SECS if interval is None else interval
        self.max_attempts = POLL_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self.initial_delay = POLL_INITIAL_DELAY_SECS if initial_delay is None else initial_delay
        self.sleep = sleep

    # ---------- HTTP ----------

    @property
    def session(self) -> requests.Session:
        if self._shared_session is not None:
            return self._shared_session
        s = getattr(self._local, "session", None)
        if s is None:
            s = self._local.session = self._session_factory()
        return s

    def _close_thread_session(self) -> None:
        s = getattr(self._local, "session", None)
        if s is not None:
            self._local.session = None
            s.close()

    def get_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Execution status, or None while the execution is not visible yet (404)"""
        r = self.session.get(f"{self.api_base}/status", params={"fileId": job_id},
                             timeout=HTTP_TIMEOUT_SECS)
        if r.status_code == 404:
            return None
        if r.status_code != 200:
            raise StatusCheckError(f"Status check failed with status: {r.status_code}")
        return r.json()

    def resolve_job_id(self, file_name: str, attempts: int = 10) -> Optional[str]:
        """Find the job started for an uploaded file via the legacy fileName lookup"""
        for _ in range(attempts):
            r = self.session.get(f"{self.api_base}/status", params={"fileName": file_name},
                                 timeout=HTTP_TIMEOUT_SECS)
            if r.status_code == 200:
                return r.json().get("jobName")
            if r.status_code != 404:
                raise StatusCheckError(f"Status check failed with status: {r.status_code}")
            self.sleep(self.interval)
        return None

    def get_result(self, job_id: str) -> Dict[str, Any]:
        r = self.session.get(f"{self.api_base}/results/{job_id}", timeout=HTTP_TIMEOUT_SECS)
        if r.status_code != 200:
            raise StatusCheckError(f"Failed to get analysis results. Status: {r.status_code}")
        return r.json()

    # ---------- polling ----------

    def _emit(self, update: StatusUpdate) -> StatusUpdate:
        self.notifier.notify(update)
        return update

    def _finish_completed(self, job_id: str, attempt: int) -> StatusUpdate:
        try:
            result = self.get_result(job_id)
        except (requests.RequestException, StatusCheckError, ValueError):
            # Job finished; results may lag behind the status
            result = None
        return self._emit(StatusUpdate(job_id, JobStatus.COMPLETED, attempt, result=result))

    def _finish_timeout(self, job_id: str, attempts: int) -> StatusUpdate:
        """Budget exhausted: one last direct result fetch before reporting timeout"""
        try:
            result = self.get_result(job_id)
        except (requests.RequestException, StatusCheckError, ValueError):
            err = PollTimeoutError(job_id, attempts)
            return self._emit(StatusUpdate(job_id, JobStatus.TIMEOUT, attempts, error=str(err)))
        return self._emit(StatusUpdate(job_id, JobStatus.COMPLETED, attempts, result=result))

    def poll(self, job_id: str) -> StatusUpdate:
        """Block until the job reaches a final client status and return it"""
        self._emit(StatusUpdate(job_id, JobStatus.PROCESSING))
        self.sleep(self.initial_delay)

        attempt = 0
        while True:
            attempt += 1
            try:
                status = self.get_status(job_id)
            except (requests.RequestException, StatusCheckError, ValueError) as e:
                if attempt >= self.max_attempts:
                    return self._emit(StatusUpdate(job_id, JobStatus.ERROR, attempt, error=str(e)))
                self.sleep(self.interval)
                continue

            if status is not None and status.get("isComplete"):
                if status.get("isSuccessful"):
                    return self._finish_completed(job_id, attempt)
                return self._emit(StatusUpdate(
                    job_id, JobStatus.FAILED, attempt,
                    error=status.get("error") or "Processing failed", detail=status,
                ))

            self._emit(StatusUpdate(job_id, JobStatus.PROCESSING, attempt, detail=status or {}))

            if attempt >= self.max_attempts:
                return self._finish_timeout(job_id, attempt)
            self.sleep(self.interval)

    def watch(self, job_id: str, listener: Listener) -> threading.Thread:
        """Poll in a background thread, delivering updates to listener"""
        unsubscribe = self.notifier.subscribe(job_id, listener)

        def run():
            try:
                self.poll(job_id)
            finally:
                unsubscribe()
                self._close_thread_session()

        t = threading.Thread(target=run, name=f"poll-{job_id}", daemon=True)
        t.start()
        return t
