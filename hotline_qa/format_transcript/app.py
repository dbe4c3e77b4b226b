"""
Format Transcript Lambda - Step Functions workflow step
Converts Call Analytics output into the canonical transcript and stores it
"""
from utils.aws_clients import AWSClients
from utils.error_handler import lambda_error_handler, InputValidator, ValidationError
from utils.helper import log_json, read_json, write_json
from utils.transcript import analytics_to_raw, normalise_transcript
from utils import artifact_paths

s3 = AWSClients.s3()


@lambda_error_handler()
def lambda_handler(event, context):
    InputValidator.validate_required_fields(event, ["bucket", "transcriptKey"], "workflow input")
    bucket = event["bucket"]
    job_name = event.get("jobName") or artifact_paths.job_id_from_analytics_key(event["transcriptKey"])

    analytics = read_json(s3, bucket, event["transcriptKey"])
    raw = analytics_to_raw(analytics)

    try:
        canonical = normalise_transcript(raw)
    except ValidationError as e:
        log_json("ERROR", "TRANSCRIPT_REJECTED", jobName=job_name, field=e.field, error=e.message)
        raise

    formatted_key = artifact_paths.formatted_key(job_name)
    write_json(s3, bucket, formatted_key, canonical.model_dump(mode="json"))

    log_json("INFO", "TRANSCRIPT_FORMATTED", jobName=job_name, formattedKey=formatted_key,
             utterances=len(canonical.transcript), summary_chars=len(canonical.summary))
    return {**event, "jobName": job_name, "formattedKey": formatted_key}
