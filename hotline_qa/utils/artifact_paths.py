"""
S3 artifact layout for one evaluation job.

    records/<file>                                  uploaded recording
    transcripts/analytics/<jobId>.json              Transcribe Call Analytics output
    transcripts/formatted/formatted_<jobId>.json    canonical transcript
    results/llmOutput/analysis_<jobId>.json         criterion verdicts (or degraded reply)
    results/aggregated_<jobId>.json                 aggregated evaluation

Transforms between stages are explicit functions; a key that does not
belong to the expected stage raises ValueError instead of being rewritten.
"""
import posixpath
from typing import List

from constants import (
    ANALYTICS_PREFIX,
    FORMATTED_PREFIX,
    LLM_OUTPUT_PREFIX,
    RECORDS_PREFIX,
    RESULTS_PREFIX,
)

FORMATTED_FILE_PREFIX = "formatted_"
ANALYSIS_FILE_PREFIX = "analysis_"
AGGREGATED_FILE_PREFIX = "aggregated_"
JSON_SUFFIX = ".json"


def _job_id_from(key: str, prefix: str, file_prefix: str = "") -> str:
    head = prefix + file_prefix
    if not isinstance(key, str) or not key.startswith(head) or not key.endswith(JSON_SUFFIX):
        raise ValueError(f"{key!r} is not a {head}<id>{JSON_SUFFIX} key")
    job_id = key[len(head):-len(JSON_SUFFIX)]
    if not job_id or "/" in job_id:
        raise ValueError(f"{key!r} does not carry a job id")
    return job_id


def is_recording_key(key: str) -> bool:
    return isinstance(key, str) and key.startswith(RECORDS_PREFIX) and len(key) > len(RECORDS_PREFIX)


def recording_file_name(key: str) -> str:
    if not is_recording_key(key):
        raise ValueError(f"{key!r} is not under {RECORDS_PREFIX}")
    return posixpath.basename(key)


def strip_extension(file_name: str) -> str:
    stem, _ext = posixpath.splitext(file_name)
    return stem


def analytics_key(job_id: str) -> str:
    return f"{ANALYTICS_PREFIX}{job_id}{JSON_SUFFIX}"


def analytics_output_prefix() -> str:
    return ANALYTICS_PREFIX


def formatted_key(job_id: str) -> str:
    return f"{FORMATTED_PREFIX}{FORMATTED_FILE_PREFIX}{job_id}{JSON_SUFFIX}"


def analysis_key(job_id: str) -> str:
    return f"{LLM_OUTPUT_PREFIX}{ANALYSIS_FILE_PREFIX}{job_id}{JSON_SUFFIX}"


def aggregated_key(job_id: str) -> str:
    return f"{RESULTS_PREFIX}{AGGREGATED_FILE_PREFIX}{job_id}{JSON_SUFFIX}"


def legacy_result_key(job_id: str) -> str:
    return f"{RESULTS_PREFIX}{job_id}{JSON_SUFFIX}"


def job_id_from_analytics_key(key: str) -> str:
    return _job_id_from(key, ANALYTICS_PREFIX)


def job_id_from_formatted_key(key: str) -> str:
    return _job_id_from(key, FORMATTED_PREFIX, FORMATTED_FILE_PREFIX)


def job_id_from_analysis_key(key: str) -> str:
    return _job_id_from(key, LLM_OUTPUT_PREFIX, ANALYSIS_FILE_PREFIX)


def job_id_from_aggregated_key(key: str) -> str:
    return _job_id_from(key, RESULTS_PREFIX, AGGREGATED_FILE_PREFIX)


def formatted_to_analysis(key: str) -> str:
    return analysis_key(job_id_from_formatted_key(key))


def analysis_to_aggregated(key: str) -> str:
    return aggregated_key(job_id_from_analysis_key(key))


def result_candidates(job_id: str) -> List[str]:
    """Result keys in lookup order; the first one that exists wins"""
    return [analysis_key(job_id), aggregated_key(job_id), legacy_result_key(job_id)]


def s3_uri(bucket: str, key: str) -> str:
    return f"s3://{bucket}/{key}"
