# hotline_qa/constants.py
"""
Centralized constants for the Hotline QA evaluation pipeline.
These values are used across multiple Lambda functions to maintain consistency.
"""

import os

# AWS Configuration
DEFAULT_REGION = "us-east-1"
AWS_REGION = os.getenv("AWS_REGION", DEFAULT_REGION)

# Model Configuration
# Ordered fallback chain: the first model that answers wins
DEFAULT_MODEL_IDS = "amazon.nova-pro-v1:0,anthropic.claude-3-sonnet-20240229-v1:0,amazon.nova-lite-v1:0"
DEFAULT_LLM_TEMPERATURE = 0.1
DEFAULT_LLM_TOP_P = 0.9
DEFAULT_LLM_MAX_TOKENS = 4096
DEFAULT_LLM_TRIES_PER_MODEL = 2

# Transcribe Configuration
DEFAULT_TRANSCRIBE_LANGUAGE = "en-US"
AGENT_CHANNEL_ID = 1
CUSTOMER_CHANNEL_ID = 0

# S3 layout
RECORDS_PREFIX = "records/"
ANALYTICS_PREFIX = "transcripts/analytics/"
FORMATTED_PREFIX = "transcripts/formatted/"
RESULTS_PREFIX = "results/"
LLM_OUTPUT_PREFIX = "results/llmOutput/"

# Counselor profiles
DEFAULT_PROGRAM = os.getenv("DEFAULT_PROGRAM", "National Hotline Program")
UNKNOWN_COUNSELOR_ID = "unknown"
UNKNOWN_COUNSELOR_NAME = "Unknown Counselor"

# Required Environment Variables (validated at runtime)
def get_required_env(key: str) -> str:
    """Get required environment variable, fail gracefully during development"""
    value = os.environ.get(key)
    if not value:
        # In production Lambda, these will be set
        # During development/testing, provide helpful error
        if os.environ.get("AWS_LAMBDA_FUNCTION_NAME"):
            raise ValueError(f"Required environment variable {key} not set")
        return f"MISSING_{key}"
    return value

BUCKET_NAME = get_required_env("BUCKET_NAME")
EVALUATIONS_TABLE = get_required_env("EVALUATIONS_TABLE")
COUNSELOR_PROFILES_TABLE = get_required_env("COUNSELOR_PROFILES_TABLE")

# Environment-driven configuration with defaults
STATE_MACHINE_ARN = os.getenv("STATE_MACHINE_ARN", "")
TRANSCRIBE_ROLE_ARN = os.getenv("TRANSCRIBE_ROLE_ARN", "")
MODEL_IDS = [m.strip() for m in os.getenv("MODEL_IDS", DEFAULT_MODEL_IDS).split(",") if m.strip()]
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", DEFAULT_LLM_TEMPERATURE))
LLM_TOP_P = float(os.getenv("LLM_TOP_P", DEFAULT_LLM_TOP_P))
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", DEFAULT_LLM_MAX_TOKENS))
LLM_TRIES_PER_MODEL = int(os.getenv("LLM_TRIES_PER_MODEL", DEFAULT_LLM_TRIES_PER_MODEL))
TRANSCRIBE_LANGUAGE = os.getenv("TRANSCRIBE_LANGUAGE", DEFAULT_TRANSCRIBE_LANGUAGE)
STATUS_LIST_MAX_RESULTS = int(os.getenv("STATUS_LIST_MAX_RESULTS", "50"))
