"""
Start Transcribe Lambda - Step Functions workflow step
Starts a Call Analytics job for the recording (agent on channel 1, caller on channel 0)
"""
from botocore.exceptions import ClientError

from utils.aws_clients import AWSClients
from utils.error_handler import lambda_error_handler, InputValidator, ExternalServiceError
from utils.helper import log_json
from utils import artifact_paths
from constants import *

transcribe = AWSClients.transcribe()


def build_job_request(bucket: str, key: str, job_name: str) -> dict:
    return {
        "CallAnalyticsJobName": job_name,
        "Media": {"MediaFileUri": artifact_paths.s3_uri(bucket, key)},
        "Settings": {
            "LanguageOptions": [TRANSCRIBE_LANGUAGE],
            "Summarization": {"GenerateAbstractiveSummary": True},
        },
        "ChannelDefinitions": [
            {"ChannelId": AGENT_CHANNEL_ID, "ParticipantRole": "AGENT"},
            {"ChannelId": CUSTOMER_CHANNEL_ID, "ParticipantRole": "CUSTOMER"},
        ],
        "DataAccessRoleArn": TRANSCRIBE_ROLE_ARN,
        "OutputLocation": artifact_paths.s3_uri(bucket, artifact_paths.analytics_output_prefix()),
    }


@lambda_error_handler()
def lambda_handler(event, context):
    InputValidator.validate_required_fields(event, ["bucket", "key", "jobName"], "workflow input")
    job_name = InputValidator.validate_file_id(event["jobName"])
    bucket = event["bucket"]
    key = event["key"]

    log_json("INFO", "TRANSCRIBE_START", jobName=job_name, key=key)

    try:
        transcribe.start_call_analytics_job(**build_job_request(bucket, key, job_name))
    except ClientError as e:
        code = e.response.get("Error", {}).get("Code", "")
        if code == "ConflictException":
            # Step retried after the job was already accepted
            log_json("INFO", "TRANSCRIBE_ALREADY_STARTED", jobName=job_name)
        else:
            raise ExternalServiceError(
                f"Failed to start Call Analytics job: {e}",
                service="transcribe",
                details={"error_code": code},
                correlation_id=job_name
            ) from e

    log_json("INFO", "TRANSCRIBE_STARTED", jobName=job_name)
    return {**event, "jobName": job_name}
