"""
Analyze LLM Lambda - Step Functions workflow step
Scores the canonical transcript against the rubric through the model fallback chain
"""
import json
import re
from typing import Any, Dict

from botocore.exceptions import ClientError

from utils import helper
from utils.aws_clients import AWSClients
from utils.error_handler import lambda_error_handler, InputValidator, ParseError, is_not_found
from utils.helper import log_json, read_json, write_json
from utils.model_fallback import ModelFallbackChain
from utils.rubric import canonical_criterion, verdicts_from_llm
from utils.transcript import normalise_transcript
from utils import artifact_paths
from prompts import RUBRIC_SYSTEM_PROMPT, RUBRIC_USER_TEMPLATE, RUBRIC_PROMPT_VERSION
from constants import *

s3 = AWSClients.s3()

FENCE_PATTERN = re.compile(r"^\s*```(?:json|JSON)?\s*(.*?)\s*```\s*$", re.DOTALL)
TRAILING_COMMA = re.compile(r",(\s*[}\]])")
# A quoted key followed by a value that can open a criterion entry
ENTRY_KEY = re.compile(r'"((?:[^"\\]|\\.)+)"\s*:\s*(?=[{\[\d"-])')

_decoder = json.JSONDecoder()


def strip_fences(text: str) -> str:
    m = FENCE_PATTERN.match(text or "")
    return m.group(1) if m else (text or "").strip()


def _loads_object(text: str):
    for candidate in (text, TRAILING_COMMA.sub(r"\1", text)):
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def extract_criteria(text: str) -> Dict[str, Any]:
    """
    Recover the complete criterion entries of a truncated or malformed reply.

    Each rubric key is decoded on its own; entries cut off mid-value are skipped.
    """
    text = TRAILING_COMMA.sub(r"\1", text)
    recovered: Dict[str, Any] = {}
    for m in ENTRY_KEY.finditer(text):
        if canonical_criterion(m.group(1)) is None:
            continue
        try:
            value, _end = _decoder.raw_decode(text, m.end())
        except json.JSONDecodeError:
            continue
        recovered.setdefault(m.group(1), value)
    return recovered


def parse_scoring_reply(text: str, job_name: str = "") -> Dict[str, Any]:
    """
    Parse the model reply into a JSON object.

    Tries the fence-stripped text first, then the outermost {...} span,
    each also with trailing commas removed. A reply that still does not
    parse (typically cut off at the token limit) keeps whichever criterion
    entries decode on their own. Raises ParseError when nothing is usable.
    """
    cleaned = strip_fences(text)
    parsed = _loads_object(cleaned)
    if parsed is not None:
        return parsed

    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1:
        raise ParseError("model reply contains no JSON object", raw_text=text)
    if end > start:
        parsed = _loads_object(cleaned[start:end + 1])
        if parsed is not None:
            return parsed

    recovered = extract_criteria(cleaned[start:])
    if not recovered:
        raise ParseError("model reply is not valid JSON", raw_text=text)
    log_json("WARNING", "LLM_REPLY_PARTIALLY_RECOVERED", jobName=job_name,
             recovered=len(recovered), reply_chars=len(text))
    return recovered


def build_artifact(reply_text: str, summary: str, job_name: str = "") -> Dict[str, Any]:
    """Criterion verdicts keyed by rubric name, or the degraded {raw_analysis, summary}"""
    try:
        parsed = parse_scoring_reply(reply_text, job_name)
        verdicts = verdicts_from_llm(parsed, job_name)
        if not verdicts:
            raise ParseError("model reply has no recognised rubric criteria", raw_text=reply_text)
    except ParseError as e:
        log_json("WARNING", "LLM_REPLY_UNPARSEABLE", jobName=job_name, error=e.message,
                 reply_chars=len(reply_text or ""))
        return {"raw_analysis": reply_text, "summary": summary}

    return {name: v.model_dump() for name, v in verdicts.items()}


def _existing_artifact(bucket: str, key: str):
    try:
        return read_json(s3, bucket, key)
    except ClientError as e:
        if is_not_found(e):
            return None
        raise


@lambda_error_handler()
def lambda_handler(event, context):
    InputValidator.validate_required_fields(event, ["bucket", "formattedKey"], "workflow input")
    bucket = event["bucket"]
    formatted_key = event["formattedKey"]
    job_name = event.get("jobName") or artifact_paths.job_id_from_formatted_key(formatted_key)
    result_key = artifact_paths.formatted_to_analysis(formatted_key)

    # Only normalised content may reach the model, even if the stored file was altered
    transcript = normalise_transcript(read_json(s3, bucket, formatted_key))

    if _existing_artifact(bucket, result_key) is not None:
        log_json("INFO", "LLM_ANALYSIS_EXISTS", jobName=job_name, resultKey=result_key)
        return {**event, "jobName": job_name, "resultKey": result_key}

    user_text = RUBRIC_USER_TEMPLATE.format(
        summary=transcript.summary or "N/A",
        transcript=transcript.as_prompt_text(),
    )
    messages = [{"role": "user", "content": [{"text": user_text}]}]

    chain = ModelFallbackChain(MODEL_IDS, tries_per_model=LLM_TRIES_PER_MODEL)
    log_json("INFO", "LLM_SCORING_START", jobName=job_name, models=MODEL_IDS,
             promptVersion=RUBRIC_PROMPT_VERSION, input_chars=len(user_text))

    result = chain.converse(
        messages,
        system=RUBRIC_SYSTEM_PROMPT,
        job_name=job_name,
        max_tokens=LLM_MAX_TOKENS,
        temperature=LLM_TEMPERATURE,
        top_p=LLM_TOP_P,
    )

    reply_text = helper.response_text(result.response)
    usage = result.response.get("usage", {}) or {}
    cost = helper.calculate_bedrock_cost(usage, result.model_id)
    log_json("INFO", "LLM_SCORING_OK", jobName=job_name, modelId=result.model_id,
             latency_ms=result.latency_ms, output_chars=len(reply_text),
             input_tokens=usage.get("inputTokens", 0), output_tokens=usage.get("outputTokens", 0),
             cost_usd=cost["total_cost"])

    artifact = build_artifact(reply_text, transcript.summary, job_name)
    write_json(s3, bucket, result_key, artifact)

    return {
        **event,
        "jobName": job_name,
        "resultKey": result_key,
        "modelId": result.model_id,
        "degraded": "raw_analysis" in artifact,
    }
