"""
Evaluation job lifecycle and an in-process workflow runner.

In AWS the stages are chained by the Step Functions state machine in
statemachine/evaluation_workflow.asl.json. EvaluationWorkflow chains the
same Lambda handlers locally (bulk CLI, tests) with identical semantics:
strict sequence, wait loop on transcription, first stage error fails the job.
"""
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from utils.helper import log_json


class JobState(str, Enum):
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"
    ABORTED = "ABORTED"


TERMINAL_STATES = frozenset({JobState.SUCCEEDED, JobState.FAILED, JobState.TIMED_OUT, JobState.ABORTED})

# One-way: RUNNING is the only state with exits
TRANSITIONS = {
    JobState.RUNNING: TERMINAL_STATES,
    JobState.SUCCEEDED: frozenset(),
    JobState.FAILED: frozenset(),
    JobState.TIMED_OUT: frozenset(),
    JobState.ABORTED: frozenset(),
}


class JobStateError(Exception):
    """Illegal job state transition or mutation of a finished job"""


def _now() -> datetime:
    return datetime.now(timezone.utc)


class JobRecord:
    """Lifecycle of one evaluation job"""

    def __init__(self, job_id: str, start_date: Optional[datetime] = None):
        self.job_id = job_id
        self.state = JobState.RUNNING
        self.start_date = start_date or _now()
        self.stop_date: Optional[datetime] = None
        self.error: Optional[str] = None
        self.current_stage: Optional[str] = None
        self.output: Dict[str, Any] = {}

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def _guard(self):
        if self.is_terminal:
            raise JobStateError(f"job {self.job_id} is {self.state.value} and can no longer change")

    def enter_stage(self, stage: str):
        self._guard()
        self.current_stage = stage

    def record_output(self, output: Dict[str, Any]):
        self._guard()
        self.output = dict(output)

    def transition(self, new_state: JobState, error: Optional[str] = None):
        if new_state not in TRANSITIONS[self.state]:
            raise JobStateError(f"job {self.job_id}: {self.state.value} -> {new_state.value} not allowed")
        self.state = new_state
        self.stop_date = _now()
        self.error = error

    def to_status(self) -> Dict[str, Any]:
        """Same shape as the status API"""
        status = {
            "status": self.state.value,
            "startDate": self.start_date.isoformat(),
            "stopDate": self.stop_date.isoformat() if self.stop_date else None,
            "isComplete": self.is_terminal,
            "isSuccessful": self.state == JobState.SUCCEEDED,
        }
        if self.error:
            status["error"] = self.error
        return status


@dataclass
class WorkflowStage:
    name: str
    handler: Callable[[Dict[str, Any], Any], Dict[str, Any]]
    # Stage is re-run (after a wait) until this returns True
    until: Optional[Callable[[Dict[str, Any]], bool]] = None


class EvaluationWorkflow:
    """Run the evaluation stages for one job, in order"""

    def __init__(self, stages: Sequence[WorkflowStage], wait_seconds: float = 30,
                 timeout_seconds: float = 1800, sleep: Callable[[float], None] = time.sleep):
        self.stages: List[WorkflowStage] = list(stages)
        self.wait_seconds = wait_seconds
        self.timeout_seconds = timeout_seconds
        self.sleep = sleep

    def run(self, event: Dict[str, Any], job: Optional[JobRecord] = None) -> JobRecord:
        job = job or JobRecord(event.get("jobName", "local"))
        waited = 0.0
        state = dict(event)

        log_json("INFO", "WORKFLOW_STARTED", jobName=job.job_id, stages=[s.name for s in self.stages])

        for stage in self.stages:
            job.enter_stage(stage.name)
            while True:
                try:
                    state = stage.handler(state, None)
                except Exception as e:
                    log_json("ERROR", "WORKFLOW_STAGE_FAILED", jobName=job.job_id, stage=stage.name,
                             error_type=type(e).__name__, error=str(e)[:500])
                    job.transition(JobState.FAILED, error=f"{stage.name}: {type(e).__name__}")
                    return job

                if stage.until is None or stage.until(state):
                    break

                if waited + self.wait_seconds > self.timeout_seconds:
                    log_json("ERROR", "WORKFLOW_TIMED_OUT", jobName=job.job_id, stage=stage.name,
                             waited_seconds=waited)
                    job.transition(JobState.TIMED_OUT, error=f"{stage.name}: timed out")
                    return job
                self.sleep(self.wait_seconds)
                waited += self.wait_seconds

            log_json("INFO", "WORKFLOW_STAGE_OK", jobName=job.job_id, stage=stage.name)

        job.record_output(state)
        job.transition(JobState.SUCCEEDED)
        log_json("INFO", "WORKFLOW_SUCCEEDED", jobName=job.job_id)
        return job


def default_stages() -> List[WorkflowStage]:
    """The production stage handlers, in state machine order"""
    from start_transcribe.app import lambda_handler as start_transcribe
    from check_transcribe_status.app import lambda_handler as check_transcribe_status
    from format_transcript.app import lambda_handler as format_transcript
    from analyze_llm.app import lambda_handler as analyze_llm
    from aggregate_scores.app import lambda_handler as aggregate_scores
    from update_counselor_records.app import lambda_handler as update_counselor_records

    return [
        WorkflowStage("StartTranscribeJob", start_transcribe),
        WorkflowStage("CheckTranscribeStatus", check_transcribe_status,
                      until=lambda e: "transcriptKey" in e),
        WorkflowStage("FormatTranscript", format_transcript),
        WorkflowStage("AnalyzeLLM", analyze_llm),
        WorkflowStage("AggregateScores", aggregate_scores),
        WorkflowStage("UpdateCounselorRecords", update_counselor_records),
    ]
