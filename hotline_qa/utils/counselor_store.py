"""
Counselor profile and evaluation record persistence.

Profiles are created at most once per CounselorId using a conditional put,
so concurrent first evaluations for a new counselor cannot double-create.
Evaluation records are append-only.
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from botocore.exceptions import ClientError

from constants import (
    COUNSELOR_PROFILES_TABLE,
    DEFAULT_PROGRAM,
    EVALUATIONS_TABLE,
    UNKNOWN_COUNSELOR_ID,
    UNKNOWN_COUNSELOR_NAME,
)
from utils.aws_clients import AWSClients
from utils.error_handler import ValidationError, is_conditional_check_failure
from utils.helper import log_json, to_ddb_numbers
from utils.models import EvaluationRecord
from utils.retry_handler import DynamoDBRetryWrapper

SCORE_FIELDS = ("RapportSkills", "CounselingSkills", "OrganizationalSkills", "TechnicalSkills")
MAX_FREE_TEXT = 500
MAX_COUNSELOR_NAME = 100
MAX_AUDIO_FILE_NAME = 255


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _profiles_table(table=None):
    return DynamoDBRetryWrapper(table if table is not None else AWSClients.table(COUNSELOR_PROFILES_TABLE))


def _evaluations_table(table=None):
    return DynamoDBRetryWrapper(table if table is not None else AWSClients.table(EVALUATIONS_TABLE))


def derive_counselor(file_name_without_ext: str) -> Tuple[str, str]:
    """
    Recording names follow First_Last_<anything>.

    Jane_Doe_4412 -> ("jane_doe", "Jane Doe"); anything else maps to the
    unknown counselor.
    """
    parts = (file_name_without_ext or "").split("_")
    if len(parts) < 2:
        return UNKNOWN_COUNSELOR_ID, UNKNOWN_COUNSELOR_NAME

    first, last = parts[0], parts[1]
    counselor_id = re.sub(r"[^a-zA-Z0-9_]", "", f"{first.lower()}_{last.lower()}")
    counselor_name = re.sub(r"[^a-zA-Z\s'-]", "", f"{first} {last}").strip()

    if not (2 <= len(counselor_id) <= 50) or not (2 <= len(counselor_name) <= 100):
        return UNKNOWN_COUNSELOR_ID, UNKNOWN_COUNSELOR_NAME
    # "_x" or "x_" style ids carry no real name part
    if not first or not last:
        return UNKNOWN_COUNSELOR_ID, UNKNOWN_COUNSELOR_NAME
    return counselor_id, counselor_name


def ensure_counselor_profile(counselor_id: str, counselor_name: str, table=None,
                             updated_by: str = "system") -> bool:
    """
    Create the counselor profile if it does not exist yet.

    Returns True only when this call created the profile. An existing profile
    is never modified. Failures are logged and never raised: a missing profile
    must not fail the evaluation.
    """
    now = _now_iso()
    item = {
        "CounselorId": counselor_id,
        "CounselorName": counselor_name,
        "ProgramType": [DEFAULT_PROGRAM],
        "IsActive": True,
        "CreatedDate": now,
        "LastUpdated": now,
        "UpdatedBy": updated_by,
    }
    try:
        _profiles_table(table).put_item(
            Item=item,
            ConditionExpression="attribute_not_exists(CounselorId)",
        )
    except ClientError as e:
        if is_conditional_check_failure(e):
            log_json("INFO", "COUNSELOR_PROFILE_EXISTS", counselorId=counselor_id)
            return False
        log_json("ERROR", "COUNSELOR_PROFILE_CREATE_FAILED", counselorId=counselor_id,
                 error=str(e))
        return False
    except Exception as e:
        log_json("ERROR", "COUNSELOR_PROFILE_CREATE_FAILED", counselorId=counselor_id,
                 error_type=type(e).__name__, error=str(e))
        return False

    log_json("INFO", "COUNSELOR_PROFILE_CREATED", counselorId=counselor_id,
             counselorName=counselor_name)
    return True


def _clamp(value: Any, field: str, low: float = 0, high: Optional[float] = None) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be numeric", field=field)
    value = max(low, value)
    if high is not None:
        value = min(high, value)
    return value


def _required_str(item: Dict[str, Any], field: str) -> str:
    value = item.get(field)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"Invalid {field}", field=field)
    return value


def sanitize_evaluation_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Validate and clamp an evaluation record before it is written"""
    counselor_id = re.sub(r"[^a-zA-Z0-9_]", "", _required_str(item, "CounselorId"))
    evaluation_id = re.sub(r"[^a-zA-Z0-9_-]", "", _required_str(item, "EvaluationId"))
    if not counselor_id or not evaluation_id:
        raise ValidationError("CounselorId and EvaluationId must contain safe characters")

    audio_file_name = _required_str(item, "AudioFileName")
    if re.sub(r"[^a-zA-Z0-9_.-]", "", audio_file_name) != audio_file_name:
        raise ValidationError("Invalid AudioFileName format", field="AudioFileName")
    if ".." in audio_file_name:
        raise ValidationError("Path traversal detected in AudioFileName", field="AudioFileName")
    if len(audio_file_name) > MAX_AUDIO_FILE_NAME:
        raise ValidationError("AudioFileName too long", field="AudioFileName")

    scores = item.get("CategoryScores")
    if not isinstance(scores, dict):
        raise ValidationError("Invalid CategoryScores", field="CategoryScores")

    record = EvaluationRecord(
        CounselorId=counselor_id,
        EvaluationId=evaluation_id,
        CounselorName=_required_str(item, "CounselorName")[:MAX_COUNSELOR_NAME].replace("<", "").replace(">", ""),
        AudioFileName=audio_file_name,
        EvaluationDate=_required_str(item, "EvaluationDate"),
        CategoryScores={
            name: _clamp(scores.get(name, 0), name, 0, 100) for name in SCORE_FIELDS
        },
        TotalScore=_clamp(item.get("TotalScore"), "TotalScore", 0),
        PercentageScore=_clamp(item.get("PercentageScore"), "PercentageScore", 0, 100),
        Criteria=_required_str(item, "Criteria")[:MAX_FREE_TEXT].replace("<", "").replace(">", ""),
        S3ResultPath=_required_str(item, "S3ResultPath")[:MAX_FREE_TEXT],
    )
    return record.model_dump()


def write_evaluation_record(item: Dict[str, Any], table=None) -> bool:
    """
    Append one evaluation record.

    Returns False when a record with the same key already exists (a retried
    step), which is treated as already written.
    """
    record = sanitize_evaluation_item(item)
    try:
        _evaluations_table(table).put_item(
            Item=to_ddb_numbers(record),
            ConditionExpression="attribute_not_exists(EvaluationId)",
        )
    except ClientError as e:
        if is_conditional_check_failure(e):
            log_json("INFO", "EVALUATION_ALREADY_RECORDED", counselorId=record["CounselorId"],
                     evaluationId=record["EvaluationId"])
            return False
        raise

    log_json("INFO", "EVALUATION_RECORDED", counselorId=record["CounselorId"],
             evaluationId=record["EvaluationId"], percentageScore=record["PercentageScore"])
    return True
