"""
Check Transcribe Status Lambda - Step Functions workflow step

Returns the event unchanged while the Call Analytics job is running (the
state machine waits and re-checks), adds transcriptKey once it completed,
and raises if the job failed.
"""
from utils.aws_clients import AWSClients
from utils.error_handler import lambda_error_handler, InputValidator, ExternalServiceError, NotFoundError
from utils.helper import log_json
from utils import artifact_paths

transcribe = AWSClients.transcribe()


@lambda_error_handler()
def lambda_handler(event, context):
    InputValidator.validate_required_fields(event, ["jobName"], "workflow input")
    job_name = event["jobName"]

    resp = transcribe.get_call_analytics_job(CallAnalyticsJobName=job_name)
    job = resp.get("CallAnalyticsJob")
    if not job:
        raise NotFoundError(f"Call Analytics job {job_name} not found", resource="transcribe_job")

    status = job.get("CallAnalyticsJobStatus")
    log_json("INFO", "TRANSCRIBE_STATUS", jobName=job_name, status=status)

    if status == "COMPLETED":
        return {**event, "transcriptKey": artifact_paths.analytics_key(job_name)}

    if status == "FAILED":
        raise ExternalServiceError(
            f"Transcription job {job_name} failed: {job.get('FailureReason', 'unknown')}",
            service="transcribe",
            correlation_id=job_name
        )

    # QUEUED / IN_PROGRESS
    return event
