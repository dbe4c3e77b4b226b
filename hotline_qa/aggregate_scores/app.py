"""
Aggregate Scores Lambda - Step Functions workflow step
Rolls criterion verdicts up into category, total and percentage scores
"""
from utils.aws_clients import AWSClients
from utils.error_handler import lambda_error_handler, InputValidator
from utils.helper import log_json, read_json, write_json
from utils.rubric import aggregate_artifact
from utils import artifact_paths

s3 = AWSClients.s3()


@lambda_error_handler()
def lambda_handler(event, context):
    InputValidator.validate_required_fields(event, ["bucket", "resultKey"], "workflow input")
    bucket = event["bucket"]
    result_key = event["resultKey"]
    job_name = event.get("jobName") or artifact_paths.job_id_from_analysis_key(result_key)

    artifact = read_json(s3, bucket, result_key)
    if not isinstance(artifact, dict):
        artifact = {"raw_analysis": str(artifact), "summary": ""}

    evaluation, degraded = aggregate_artifact(artifact, job_name)

    aggregated_key = artifact_paths.analysis_to_aggregated(result_key)
    write_json(s3, bucket, aggregated_key, evaluation.model_dump(mode="json", exclude_none=True))

    log_json("INFO", "SCORES_AGGREGATED", jobName=job_name, aggregatedKey=aggregated_key,
             totalRawScore=evaluation.totalRawScore,
             totalMultipliedScore=evaluation.totalMultipliedScore,
             percentageScore=evaluation.percentageScore, band=evaluation.criteria,
             degraded=degraded)

    return {**event, "jobName": job_name, "aggregatedKey": aggregated_key}
