# hotline_qa/manage_counselor_profiles/app.py
"""
Counselor profile API

GET  /counselors                  all profiles with evaluation counts
GET  /counselors/{counselorId}    one profile with evaluation count
POST /counselors                  create (201, 409 if the id exists)
PUT  /counselors/{counselorId}    update name/programs/active flag (200, 404 if missing)
"""
import json
from datetime import datetime, timezone

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from utils.aws_clients import AWSClients
from utils.error_handler import (
    lambda_error_handler, InputValidator, ValidationError, NotFoundError, ConflictError,
    CORS_HEADERS, is_conditional_check_failure
)
from utils.helper import log_json, to_jsonable
from utils.retry_handler import DynamoDBRetryWrapper
from utils.models import CounselorProfile
from constants import *

EVALUATION_DATE_INDEX = "EvaluationDateIndex"
MAX_PROGRAM_CHARS = 50


def _profiles():
    return DynamoDBRetryWrapper(AWSClients.table(COUNSELOR_PROFILES_TABLE))


def _evaluations():
    return DynamoDBRetryWrapper(AWSClients.table(EVALUATIONS_TABLE))


def validate_program_type(program_type) -> list:
    if not program_type:
        return [DEFAULT_PROGRAM]
    if not isinstance(program_type, list):
        raise ValidationError("ProgramType must be an array", field="programType")

    programs = []
    for program in program_type:
        if not isinstance(program, str):
            continue
        program = program[:MAX_PROGRAM_CHARS].replace("<", "").replace(">", "").strip()
        if program:
            programs.append(program)
    return programs or [DEFAULT_PROGRAM]


def validate_boolean(value, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() == "true"
    raise ValidationError(f"{field_name} must be a boolean value", field=field_name)


def evaluation_count(counselor_id: str) -> int:
    try:
        resp = _evaluations().query(
            KeyConditionExpression=Key("CounselorId").eq(counselor_id),
            Select="COUNT",
        )
        return int(resp.get("Count", 0))
    except ClientError as e:
        log_json("WARNING", "EVALUATION_COUNT_FAILED", counselorId=counselor_id, error=str(e))
        return 0


def last_evaluation_date(counselor_id: str):
    try:
        resp = _evaluations().query(
            IndexName=EVALUATION_DATE_INDEX,
            KeyConditionExpression=Key("CounselorId").eq(counselor_id),
            ScanIndexForward=False,
            Limit=1,
            ProjectionExpression="EvaluationDate",
        )
    except ClientError as e:
        log_json("WARNING", "LAST_EVALUATION_LOOKUP_FAILED", counselorId=counselor_id, error=str(e))
        return None
    items = resp.get("Items", [])
    return items[0].get("EvaluationDate") if items else None


def _with_evaluations(profile: dict) -> dict:
    counselor_id = profile["CounselorId"]
    return {
        **profile,
        "EvaluationCount": evaluation_count(counselor_id),
        "LastEvaluationDate": last_evaluation_date(counselor_id),
    }


def get_profile(counselor_id: str):
    counselor_id = InputValidator.validate_counselor_id(counselor_id)
    item = _profiles().get_item(Key={"CounselorId": counselor_id}).get("Item")
    if not item:
        raise NotFoundError("Counselor profile not found", resource="counselor_profile")
    return _response(200, _with_evaluations(item))


def get_all_profiles():
    table = _profiles()
    resp = table.scan()
    items = resp.get("Items", [])
    while "LastEvaluatedKey" in resp:
        resp = table.scan(ExclusiveStartKey=resp["LastEvaluatedKey"])
        items.extend(resp.get("Items", []))
    return _response(200, [_with_evaluations(item) for item in items])


def create_profile(data: dict):
    now = datetime.now(timezone.utc).isoformat()
    profile = CounselorProfile(
        CounselorId=InputValidator.validate_counselor_id(data.get("counselorId")),
        CounselorName=InputValidator.validate_counselor_name(data.get("counselorName")),
        ProgramType=validate_program_type(data.get("programType")),
        IsActive=True,
        CreatedDate=now,
        LastUpdated=now,
        UpdatedBy="api",
    ).model_dump()

    try:
        _profiles().put_item(Item=profile, ConditionExpression="attribute_not_exists(CounselorId)")
    except ClientError as e:
        if is_conditional_check_failure(e):
            raise ConflictError("Counselor profile already exists") from e
        raise

    log_json("INFO", "COUNSELOR_PROFILE_CREATED", counselorId=profile["CounselorId"], updatedBy="api")
    return _response(201, profile)


def update_profile(counselor_id: str, data: dict):
    counselor_id = InputValidator.validate_counselor_id(counselor_id)

    sets, names, values = [], {}, {}
    if data.get("counselorName") is not None:
        sets.append("#cn = :counselorName")
        names["#cn"] = "CounselorName"
        values[":counselorName"] = InputValidator.validate_counselor_name(data["counselorName"])
    if data.get("programType") is not None:
        sets.append("#pt = :programType")
        names["#pt"] = "ProgramType"
        values[":programType"] = validate_program_type(data["programType"])
    if data.get("isActive") is not None:
        sets.append("#ia = :isActive")
        names["#ia"] = "IsActive"
        values[":isActive"] = validate_boolean(data["isActive"], "isActive")

    if not sets:
        raise ValidationError("No valid fields to update")

    sets += ["#lu = :lastUpdated", "#ub = :updatedBy"]
    names.update({"#lu": "LastUpdated", "#ub": "UpdatedBy"})
    values.update({":lastUpdated": datetime.now(timezone.utc).isoformat(), ":updatedBy": "api"})

    try:
        resp = _profiles().update_item(
            Key={"CounselorId": counselor_id},
            UpdateExpression="SET " + ", ".join(sets),
            ConditionExpression="attribute_exists(CounselorId)",
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ReturnValues="ALL_NEW",
        )
    except ClientError as e:
        if is_conditional_check_failure(e):
            raise NotFoundError("Counselor profile not found", resource="counselor_profile") from e
        raise

    log_json("INFO", "COUNSELOR_PROFILE_UPDATED", counselorId=counselor_id,
             fields=sorted(v for k, v in names.items() if k not in ("#lu", "#ub")))
    return _response(200, resp.get("Attributes", {}))


def _parse_body(event) -> dict:
    body = event.get("body") or "{}"
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except json.JSONDecodeError as e:
            raise ValidationError("Request body must be valid JSON") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


@lambda_error_handler()
def lambda_handler(event, context):
    method = event.get("httpMethod")
    path_params = event.get("pathParameters") or {}
    counselor_id = path_params.get("counselorId")

    if method == "OPTIONS":
        return _response(200, {"message": "CORS preflight"})
    if method == "GET":
        return get_profile(counselor_id) if counselor_id else get_all_profiles()
    if method == "POST":
        return create_profile(_parse_body(event))
    if method == "PUT":
        if not counselor_id:
            raise ValidationError("CounselorId is required for PUT operations", field="counselorId")
        return update_profile(counselor_id, _parse_body(event))
    return _response(405, {"error": "Method not allowed"})


def _response(status_code: int, body):
    return {
        "statusCode": status_code,
        "headers": {**CORS_HEADERS, "Content-Type": "application/json"},
        "body": json.dumps(to_jsonable(body)),
    }
