import json
import random
import time
from datetime import datetime, timezone
from decimal import Decimal
from botocore.exceptions import ClientError
from botocore.config import Config
import boto3
from constants import AWS_REGION
from utils.retry_handler import with_s3_retry

# AWS client with timeout configuration
# read_timeout: Maximum time to wait for Bedrock to return a scored evaluation
# connect_timeout: Maximum time to wait for connection to Bedrock
bedrock_config = Config(
    read_timeout=180,
    connect_timeout=10,
    retries={'max_attempts': 0}  # We handle retries manually in bedrock_converse()
)
bedrock = boto3.client("bedrock-runtime", region_name=AWS_REGION, config=bedrock_config)

# On-demand pricing (AWS Bedrock, us-east-1)
BEDROCK_PRICING = {
    "amazon.nova-pro-v1:0": {
        "input_per_1k": 0.0008,
        "output_per_1k": 0.0032,
    },
    "amazon.nova-lite-v1:0": {
        "input_per_1k": 0.00006,
        "output_per_1k": 0.00024,
    },
    "anthropic.claude-3-sonnet-20240229-v1:0": {
        "input_per_1k": 0.003,
        "output_per_1k": 0.015,
    },
}


def calculate_bedrock_cost(usage: dict, model_id: str) -> dict:
    """
    Calculate AWS Bedrock API cost from token usage.

    Unknown models are priced at the Nova Pro rate.
    """
    pricing = BEDROCK_PRICING.get(model_id, BEDROCK_PRICING["amazon.nova-pro-v1:0"])

    input_tokens = usage.get("inputTokens", 0)
    output_tokens = usage.get("outputTokens", 0)

    input_cost = (input_tokens / 1000) * pricing["input_per_1k"]
    output_cost = (output_tokens / 1000) * pricing["output_per_1k"]

    return {
        "input_cost": round(input_cost, 6),
        "output_cost": round(output_cost, 6),
        "total_cost": round(input_cost + output_cost, 6)
    }


def log_json(level: str, msg: str, **kwargs):
    """
    Print a single JSON line for CloudWatch logs.
    Usage: log_json("INFO", "LLM_SCORING_OK", jobName=..., modelId=..., latency_ms=...)
    """
    try:
        payload = {
            "level": level.upper(),
            "message": msg,
            "ts": datetime.now(timezone.utc).isoformat(),
        }
        if kwargs:
            payload.update(kwargs)
        print(json.dumps(payload, ensure_ascii=False, default=str))
    except Exception:
        # never fail logging
        print(f"{level.upper()} {msg} {kwargs}")

def _should_retry_bedrock_error(err: Exception) -> bool:
    if isinstance(err, ClientError):
        code = err.response.get("Error", {}).get("Code", "")
        return code in {
            "ThrottlingException",
            "ModelTimeoutException",
            "ServiceUnavailableException",
            "InternalServerException",
            "BandwidthLimitExceeded",
        }
    # Fallback: no retry
    return False

def bedrock_converse(
    model_id: str,
    messages: list,
    system: str = None,
    max_tokens: int = 4096,
    temperature: float = 0.0,
    top_p: float = None,
    tries: int = 5,
    base: float = 0.6,
    max_sleep: float = 6.0
):
    """
    Invoke Bedrock using Converse API with exponential backoff + jitter.

    Args:
        model_id: Bedrock model ID
        messages: List of message dicts with 'role' and 'content'
        system: Optional system prompt - can be string or list of system blocks
        max_tokens: Maximum tokens to generate
        temperature: Sampling temperature
        top_p: Optional nucleus sampling cutoff
        tries: Number of attempts against this model
        base: Base delay for exponential backoff
        max_sleep: Maximum sleep duration

    Returns:
        Tuple of (response_dict, latency_ms)
        response_dict contains: output, stopReason, usage, etc.
    """
    last_err = None
    for attempt in range(1, tries + 1):
        t0 = time.perf_counter()
        try:
            request_params = {
                "modelId": model_id,
                "messages": messages,
                "inferenceConfig": {
                    "maxTokens": max_tokens,
                    "temperature": temperature,
                }
            }
            if top_p is not None:
                request_params["inferenceConfig"]["topP"] = top_p

            if system:
                if isinstance(system, str):
                    request_params["system"] = [{"text": system}]
                elif isinstance(system, list):
                    request_params["system"] = system
                else:
                    raise ValueError(f"system must be str or list, got {type(system)}")

            resp = bedrock.converse(**request_params)
            latency_ms = round((time.perf_counter() - t0) * 1000, 2)
            return resp, latency_ms

        except Exception as e:
            last_err = e
            retryable = _should_retry_bedrock_error(e)
            # Also retry on transient network issues
            if not retryable and not isinstance(e, TimeoutError):
                # If not clearly retryable, only retry first time as grace
                if attempt >= 2:
                    break
            if attempt == tries:
                break
            # backoff with jitter
            sleep_s = min(max_sleep, base * (2 ** (attempt - 1))) * (0.7 + 0.6 * random.random())
            time.sleep(sleep_s)
    raise last_err


def response_text(resp: dict) -> str:
    """Concatenate the text blocks of a Converse response"""
    blocks = resp.get("output", {}).get("message", {}).get("content", []) or []
    return "".join(b.get("text", "") for b in blocks if isinstance(b, dict))


def to_ddb_numbers(obj):
    """Recursively convert floats to Decimal for DynamoDB writes"""
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, dict):
        return {k: to_ddb_numbers(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [to_ddb_numbers(v) for v in obj]
    return obj


def to_jsonable(obj):
    """Recursively convert DynamoDB Decimals back to int/float"""
    if isinstance(obj, Decimal):
        return int(obj) if obj == obj.to_integral_value() else float(obj)
    if isinstance(obj, dict):
        return {k: to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [to_jsonable(v) for v in obj]
    return obj


@with_s3_retry()
def read_json(s3, bucket: str, key: str):
    obj = s3.get_object(Bucket=bucket, Key=key)
    return json.loads(obj["Body"].read().decode("utf-8"))


@with_s3_retry()
def write_json(s3, bucket: str, key: str, data) -> None:
    s3.put_object(
        Bucket=bucket,
        Key=key,
        Body=json.dumps(data, ensure_ascii=False, indent=2).encode("utf-8"),
        ContentType="application/json",
    )
