# hotline_qa/check_execution_status/app.py
"""
Status API - GET /status?fileId=|fileName=|executionArn=

fileId is the job id returned at upload time and maps to an exact
execution ARN. fileName is the legacy lookup: a substring match over the
most recent executions, which is best-effort only.
"""
import json

from botocore.exceptions import ClientError

from utils.aws_clients import AWSClients
from utils.error_handler import lambda_error_handler, InputValidator, ValidationError, CORS_HEADERS
from utils.helper import log_json
from constants import *

sfn = AWSClients.stepfunctions()

TERMINAL_STATUSES = {"SUCCEEDED", "FAILED", "TIMED_OUT", "ABORTED"}


def execution_arn_for(job_id: str, state_machine_arn: str = None) -> str:
    """arn:...:stateMachine:<name> -> arn:...:execution:<name>:<job_id>"""
    state_machine_arn = state_machine_arn or STATE_MACHINE_ARN
    if ":stateMachine:" not in state_machine_arn:
        raise ValueError("STATE_MACHINE_ARN is not a state machine ARN")
    return state_machine_arn.replace(":stateMachine:", ":execution:", 1) + f":{job_id}"


def _find_by_file_name(file_name: str):
    """Most recent execution whose name contains the file name (without .wav)"""
    stem = file_name[:-4] if file_name.lower().endswith(".wav") else file_name
    resp = sfn.list_executions(stateMachineArn=STATE_MACHINE_ARN, maxResults=STATUS_LIST_MAX_RESULTS)
    for execution in resp.get("executions", []):
        name = execution.get("name", "")
        if stem in name or file_name in name:
            return execution["executionArn"]
    return None


def _iso(value):
    return value.isoformat() if hasattr(value, "isoformat") else value


def status_body(execution: dict) -> dict:
    status = execution.get("status")
    body = {
        "status": status,
        "startDate": _iso(execution.get("startDate")),
        "stopDate": _iso(execution.get("stopDate")),
        "isComplete": status in TERMINAL_STATUSES,
        "isSuccessful": status == "SUCCEEDED",
        "jobName": execution.get("name"),
        "executionArn": execution.get("executionArn"),
    }
    if status == "FAILED":
        body["error"] = execution.get("error")
    return body


@lambda_error_handler()
def lambda_handler(event, context):
    method = event.get("httpMethod", "GET")
    if method == "OPTIONS":
        return _response(200, {"message": "CORS preflight"})
    if method != "GET":
        return _response(405, {"error": "Method not allowed"})

    qs = event.get("queryStringParameters") or {}
    file_id = qs.get("fileId")
    file_name = qs.get("fileName")
    execution_arn = qs.get("executionArn")

    if execution_arn:
        target_arn = InputValidator.validate_execution_arn(execution_arn)
        lookup = {"executionArn": execution_arn}
    elif file_id:
        file_id = InputValidator.validate_file_id(file_id)
        target_arn = execution_arn_for(file_id)
        lookup = {"fileId": file_id}
    elif file_name:
        file_name = InputValidator.validate_file_name(file_name)
        lookup = {"fileName": file_name}
        target_arn = _find_by_file_name(file_name)
        if not target_arn:
            log_json("INFO", "EXECUTION_NOT_FOUND", **lookup)
            return _response(404, {"error": "No execution found for the specified file",
                                   "status": "NOT_FOUND", **lookup})
    else:
        raise ValidationError("One of fileId, fileName or executionArn query parameters is required")

    try:
        execution = sfn.describe_execution(executionArn=target_arn)
    except ClientError as e:
        code = e.response.get("Error", {}).get("Code", "")
        if code == "ExecutionDoesNotExist":
            log_json("INFO", "EXECUTION_NOT_FOUND", **lookup)
            return _response(404, {"error": "Execution not found", "status": "NOT_FOUND", **lookup})
        if code == "InvalidArn":
            raise ValidationError("Invalid execution identifier", field="executionArn") from e
        raise

    body = status_body(execution)
    log_json("INFO", "EXECUTION_STATUS", status=body["status"], **lookup)
    return _response(200, {**body, **lookup})


def _response(status_code: int, body: dict):
    return {
        "statusCode": status_code,
        "headers": {**CORS_HEADERS, "Content-Type": "application/json"},
        "body": json.dumps(body, default=str),
    }
