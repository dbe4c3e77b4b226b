# hotline_qa/get_analysis_results/app.py
"""
Result API - GET /results/{fileId}

Returns the first result artifact that exists, in lookup order
(analysis, aggregated, legacy). 404 only when none exist yet.
"""
import json

from botocore.exceptions import ClientError

from utils.aws_clients import AWSClients
from utils.error_handler import lambda_error_handler, InputValidator, ValidationError, CORS_HEADERS, is_not_found
from utils.helper import log_json
from utils import artifact_paths
from constants import *

s3 = AWSClients.s3()


def find_result(bucket: str, file_id: str):
    """Return (key, parsed JSON) for the first existing candidate, or (None, None)"""
    for key in artifact_paths.result_candidates(file_id):
        try:
            obj = s3.get_object(Bucket=bucket, Key=key)
        except ClientError as e:
            if is_not_found(e):
                continue
            raise
        body = obj["Body"].read().decode("utf-8")
        if body:
            return key, json.loads(body)
    return None, None


@lambda_error_handler()
def lambda_handler(event, context):
    method = event.get("httpMethod", "GET")
    if method == "OPTIONS":
        return _response(200, {"message": "CORS preflight"})
    if method != "GET":
        return _response(405, {"error": "Method not allowed"})

    file_id = (event.get("pathParameters") or {}).get("fileId")
    if not file_id:
        raise ValidationError("fileId path parameter is required", field="fileId")
    file_id = InputValidator.validate_file_id(file_id)

    key, result = find_result(BUCKET_NAME, file_id)
    if key is None:
        log_json("INFO", "RESULT_NOT_READY", fileId=file_id)
        return _response(404, {
            "error": "Analysis results not found",
            "message": "The analysis results are not yet available. Please try again later.",
            "fileId": file_id,
        })

    log_json("INFO", "RESULT_FOUND", fileId=file_id, key=key)
    return _response(200, result)


def _response(status_code: int, body):
    return {
        "statusCode": status_code,
        "headers": {**CORS_HEADERS, "Content-Type": "application/json"},
        "body": json.dumps(body),
    }
