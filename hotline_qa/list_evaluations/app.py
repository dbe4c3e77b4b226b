# hotline_qa/list_evaluations/app.py
"""
Evaluations listing API - GET /evaluations?counselorId=&limit=

Without counselorId the table is scanned (it is small); with it the
counselor's partition is queried. Newest evaluations first.
"""
import json

from boto3.dynamodb.conditions import Key

from utils.aws_clients import AWSClients
from utils.error_handler import lambda_error_handler, InputValidator, CORS_HEADERS
from utils.helper import log_json, to_jsonable
from utils.retry_handler import DynamoDBRetryWrapper
from constants import *

DEFAULT_LIMIT = 200
MAX_LIMIT = 1000


def _parse_limit(value) -> int:
    try:
        limit = int(value if value is not None else DEFAULT_LIMIT)
    except (ValueError, TypeError):
        limit = DEFAULT_LIMIT
    return max(1, min(limit, MAX_LIMIT))


def _collect(call, limit: int, **kwargs) -> list:
    """Follow LastEvaluatedKey until limit items are gathered"""
    items = []
    resp = call(**kwargs)
    while True:
        items.extend(resp.get("Items", []))
        if len(items) >= limit or "LastEvaluatedKey" not in resp:
            break
        resp = call(ExclusiveStartKey=resp["LastEvaluatedKey"], **kwargs)
    return items


@lambda_error_handler()
def lambda_handler(event, context):
    method = event.get("httpMethod", "GET")
    if method == "OPTIONS":
        return _response(200, {"message": "CORS preflight"})
    if method != "GET":
        return _response(405, {"error": "Method not allowed"})

    qs = event.get("queryStringParameters") or {}
    limit = _parse_limit(qs.get("limit"))
    table = DynamoDBRetryWrapper(AWSClients.table(EVALUATIONS_TABLE))

    counselor_id = qs.get("counselorId")
    if counselor_id:
        counselor_id = InputValidator.validate_counselor_id(counselor_id)
        items = _collect(table.query, limit, KeyConditionExpression=Key("CounselorId").eq(counselor_id))
    else:
        items = _collect(table.scan, limit)

    items.sort(key=lambda x: str(x.get("EvaluationDate") or ""), reverse=True)
    items = items[:limit]

    log_json("INFO", "EVALUATIONS_LISTED", count=len(items), counselorId=counselor_id)
    return _response(200, {"items": items})


def _response(status_code: int, body):
    return {
        "statusCode": status_code,
        "headers": {**CORS_HEADERS, "Content-Type": "application/json"},
        "body": json.dumps(to_jsonable(body)),
    }
