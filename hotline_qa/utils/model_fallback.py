"""
Ordered model fallback for rubric scoring.

Each model in the chain is tried in turn through helper.bedrock_converse
(which does its own per-model backoff). The first model that answers wins.
"""
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from utils import helper
from utils.error_handler import ExternalServiceError, ErrorSeverity
from utils.helper import log_json


@dataclass
class ModelAttempt:
    model_id: str
    ok: bool
    latency_ms: Optional[float] = None
    error_type: Optional[str] = None
    error: Optional[str] = None


@dataclass
class FallbackResult:
    model_id: str
    response: dict
    latency_ms: float
    attempts: List[ModelAttempt] = field(default_factory=list)


class AllModelsFailedError(ExternalServiceError):
    """Every model in the fallback chain failed"""

    def __init__(self, attempts: List[ModelAttempt], last_error: Optional[Exception], **kwargs):
        models = ", ".join(a.model_id for a in attempts) or "<none>"
        super().__init__(
            f"All models failed: {models}",
            service="bedrock",
            severity=ErrorSeverity.HIGH,
            details={"attempts": [a.__dict__ for a in attempts]},
            **kwargs
        )
        self.attempts = attempts
        self.last_error = last_error
        self.__cause__ = last_error


class ModelFallbackChain:
    """Try an ordered list of Bedrock models until one succeeds"""

    def __init__(self, model_ids: Sequence[str], invoke: Callable = None, tries_per_model: int = 2):
        if not model_ids:
            raise ValueError("model fallback chain needs at least one model id")
        self.model_ids = list(model_ids)
        self.tries_per_model = tries_per_model
        # Resolved at call time so tests can patch helper.bedrock_converse
        self._invoke = invoke

    def converse(self, messages: list, system: str = None, job_name: str = "", **inference) -> FallbackResult:
        invoke = self._invoke or helper.bedrock_converse
        attempts: List[ModelAttempt] = []
        last_error: Optional[Exception] = None

        for model_id in self.model_ids:
            try:
                resp, latency_ms = invoke(
                    model_id=model_id,
                    messages=messages,
                    system=system,
                    tries=self.tries_per_model,
                    **inference
                )
            except Exception as e:
                last_error = e
                attempts.append(ModelAttempt(model_id=model_id, ok=False,
                                             error_type=type(e).__name__, error=str(e)[:500]))
                log_json("WARNING", "MODEL_FALLBACK", jobName=job_name, modelId=model_id,
                         error_type=type(e).__name__, error=str(e)[:500])
                continue

            attempts.append(ModelAttempt(model_id=model_id, ok=True, latency_ms=latency_ms))
            if len(attempts) > 1:
                log_json("INFO", "MODEL_FALLBACK_RECOVERED", jobName=job_name, modelId=model_id,
                         failedModels=[a.model_id for a in attempts if not a.ok])
            return FallbackResult(model_id=model_id, response=resp, latency_ms=latency_ms, attempts=attempts)

        log_json("ERROR", "ALL_MODELS_FAILED", jobName=job_name,
                 models=self.model_ids, last_error=str(last_error)[:500])
        raise AllModelsFailedError(attempts, last_error, correlation_id=job_name or None)
