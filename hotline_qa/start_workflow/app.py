# hotline_qa/start_workflow/app.py
"""
Start Workflow Lambda - S3 ObjectCreated trigger

Starts one evaluation execution per new recording under records/.
The execution name doubles as the job id used for every artifact.
"""
import json
import logging
import time
from urllib.parse import unquote_plus

from utils.aws_clients import AWSClients
from utils.error_handler import lambda_error_handler, ExternalServiceError, ValidationError
from utils.retry_handler import with_workflow_retry
from utils.helper import log_json
from utils import artifact_paths
from constants import *

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

sfn = AWSClients.stepfunctions()

MAX_EXECUTION_NAME = 80  # Step Functions limit


def build_job_name(file_name_without_ext: str, timestamp_ms: int) -> str:
    """<fileNameWithoutExt>-<epoch millis>, restricted to execution-name characters"""
    suffix = f"-{timestamp_ms}"
    stem = "".join(c for c in file_name_without_ext if c.isalnum() or c in "_-")
    if not stem:
        raise ValidationError(f"recording name {file_name_without_ext!r} has no usable characters",
                              field="fileName")
    return stem[:MAX_EXECUTION_NAME - len(suffix)] + suffix


@lambda_error_handler()
def lambda_handler(event, context):
    started = []
    skipped = []

    for record in event.get("Records", []):
        bucket = record["s3"]["bucket"]["name"]
        key = unquote_plus(record["s3"]["object"]["key"])

        if not artifact_paths.is_recording_key(key):
            log_json("INFO", "WORKFLOW_SKIPPED_KEY", bucket=bucket, key=key)
            skipped.append(key)
            continue

        file_name = artifact_paths.recording_file_name(key)
        file_name_without_ext = artifact_paths.strip_extension(file_name)
        timestamp = int(time.time() * 1000)
        job_name = build_job_name(file_name_without_ext, timestamp)

        execution_input = {
            "bucket": bucket,
            "key": key,
            "fileName": file_name,
            "fileNameWithoutExt": file_name_without_ext,
            "timestamp": timestamp,
            "jobName": job_name,
        }
        execution_arn = _start_execution(job_name, execution_input)
        log_json("INFO", "WORKFLOW_STARTED", jobName=job_name, key=key, executionArn=execution_arn)
        started.append({"jobName": job_name, "executionArn": execution_arn})

    return {"started": started, "skipped": skipped}


@with_workflow_retry("stepfunctions")
def _start_execution_call(job_name: str, execution_input: dict) -> dict:
    return sfn.start_execution(
        stateMachineArn=STATE_MACHINE_ARN,
        name=job_name,
        input=json.dumps(execution_input),
    )


def _start_execution(job_name: str, execution_input: dict) -> str:
    try:
        return _start_execution_call(job_name, execution_input)["executionArn"]
    except Exception as e:
        raise ExternalServiceError(
            f"Failed to start Step Functions execution: {e}",
            service="stepfunctions",
            correlation_id=job_name
        ) from e
