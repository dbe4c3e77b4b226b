"""
Update Counselor Records Lambda - Step Functions workflow step

Ensures the counselor profile exists, then appends the evaluation record.
Counselor identity comes from the recording name (First_Last_*.wav).
"""
from datetime import datetime, timezone

from utils.aws_clients import AWSClients
from utils.error_handler import lambda_error_handler, InputValidator
from utils.helper import log_json, read_json
from utils.counselor_store import derive_counselor, ensure_counselor_profile, write_evaluation_record
from utils.rubric import category_record_scores
from utils.models import AggregatedEvaluation
from utils import artifact_paths
from constants import *

s3 = AWSClients.s3()


def build_evaluation_item(evaluation: AggregatedEvaluation, counselor_id: str, counselor_name: str,
                          file_name: str, job_name: str, bucket: str, aggregated_key: str,
                          evaluation_date: str = None) -> dict:
    return {
        "CounselorId": counselor_id,
        "EvaluationId": f"eval_{job_name}",
        "CounselorName": counselor_name,
        "AudioFileName": file_name,
        "EvaluationDate": evaluation_date or datetime.now(timezone.utc).isoformat(),
        "CategoryScores": category_record_scores(evaluation),
        "TotalScore": evaluation.totalMultipliedScore,
        "PercentageScore": evaluation.percentageScore,
        "Criteria": evaluation.criteria,
        "S3ResultPath": artifact_paths.s3_uri(bucket, aggregated_key),
    }


@lambda_error_handler()
def lambda_handler(event, context):
    InputValidator.validate_required_fields(event, ["bucket", "aggregatedKey", "fileName"], "workflow input")
    bucket = event["bucket"]
    aggregated_key = event["aggregatedKey"]
    job_name = event.get("jobName") or artifact_paths.job_id_from_aggregated_key(aggregated_key)

    file_name = InputValidator.validate_file_name(event["fileName"], max_length=255)
    file_name_without_ext = event.get("fileNameWithoutExt") or artifact_paths.strip_extension(file_name)

    evaluation = AggregatedEvaluation.model_validate(read_json(s3, bucket, aggregated_key))

    counselor_id, counselor_name = derive_counselor(file_name_without_ext)
    if counselor_id == UNKNOWN_COUNSELOR_ID:
        log_json("WARNING", "COUNSELOR_NOT_DERIVED", jobName=job_name, fileName=file_name)

    ensure_counselor_profile(
        counselor_id, counselor_name,
        table=AWSClients.table(COUNSELOR_PROFILES_TABLE),
    )

    item = build_evaluation_item(evaluation, counselor_id, counselor_name, file_name,
                                 job_name, bucket, aggregated_key)
    written = write_evaluation_record(item, table=AWSClients.table(EVALUATIONS_TABLE))

    log_json("INFO", "COUNSELOR_RECORDS_UPDATED", jobName=job_name, counselorId=counselor_id,
             evaluationId=item["EvaluationId"], newRecord=written)

    return {**event, "counselorId": counselor_id, "counselorName": counselor_name}
