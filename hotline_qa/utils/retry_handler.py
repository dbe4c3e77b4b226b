#!/usr/bin/env python3
"""
Retry mechanism with exponential backoff for external service calls

Provides resilient calling patterns for S3, DynamoDB and the workflow services.
Bedrock calls are retried per model inside helper.bedrock_converse and then
fall back across models (see utils.model_fallback).
"""

import time
import random
import logging
import threading
from typing import Callable, Any, Dict, List
from functools import wraps
from dataclasses import dataclass
from enum import Enum
from botocore.exceptions import ClientError

class RetryStrategy(Enum):
    """Different retry strategies for different scenarios"""
    EXPONENTIAL_BACKOFF = "exponential_backoff"
    LINEAR_BACKOFF = "linear_backoff"
    FIXED_DELAY = "fixed_delay"

@dataclass
class RetryConfig:
    """Configuration for retry behavior"""
    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 60.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL_BACKOFF

    # Error codes that should trigger retries
    retryable_errors: List[str] = None

    def __post_init__(self):
        if self.retryable_errors is None:
            self.retryable_errors = [
                'ThrottlingException',
                'ServiceUnavailableException',
                'InternalServerError',
                'RequestTimeout',
                'TooManyRequestsException',
                'ProvisionedThroughputExceededException'
            ]

class CircuitOpenError(Exception):
    """Raised while a circuit breaker is refusing calls"""

# Caller-side outcomes that say nothing about service health
NON_FAILURE_ERROR_CODES = frozenset({
    "ConditionalCheckFailedException",
    "NoSuchKey",
    "404",
    "NotFound",
    "ConflictException",
    "ExecutionDoesNotExist",
})

class CircuitBreaker:
    """Circuit breaker pattern to prevent cascade failures"""

    def __init__(self, failure_threshold: int = 5, timeout: float = 60.0):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.failure_count = 0
        self.last_failure_time = None
        self.state = 'CLOSED'  # CLOSED, OPEN, HALF_OPEN
        self._lock = threading.Lock()

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """Call function through circuit breaker"""
        with self._lock:
            if self.state == 'OPEN':
                if time.time() - self.last_failure_time > self.timeout:
                    self.state = 'HALF_OPEN'
                else:
                    raise CircuitOpenError("Circuit breaker is OPEN - service unavailable")

        try:
            result = func(*args, **kwargs)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code", "") in NON_FAILURE_ERROR_CODES:
                self._on_success()
            else:
                self._on_failure()
            raise
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def _on_success(self):
        """Reset circuit breaker on successful call"""
        with self._lock:
            self.failure_count = 0
            self.state = 'CLOSED'

    def _on_failure(self):
        """Handle failure in circuit breaker"""
        with self._lock:
            self.failure_count += 1
            self.last_failure_time = time.time()

            if self.failure_count >= self.failure_threshold:
                self.state = 'OPEN'

# Breakers are shared per container so state survives across handler calls
_circuit_breakers: Dict[str, CircuitBreaker] = {}
_breakers_lock = threading.Lock()

def get_circuit_breaker(key: str) -> CircuitBreaker:
    with _breakers_lock:
        if key not in _circuit_breakers:
            _circuit_breakers[key] = CircuitBreaker()
        return _circuit_breakers[key]

def reset_circuit_breakers():
    with _breakers_lock:
        _circuit_breakers.clear()

class RetryHandler:
    """Main retry handler with multiple strategies"""

    def __init__(self, config: RetryConfig = None, logger: logging.Logger = None):
        self.config = config or RetryConfig()
        self.logger = logger or logging.getLogger(__name__)

    def retry_call(self, func: Callable, *args, circuit_breaker_key: str = None,
                   custom_config: RetryConfig = None, **kwargs) -> Any:
        """Execute function with retry logic"""

        config = custom_config or self.config
        circuit_breaker = get_circuit_breaker(circuit_breaker_key) if circuit_breaker_key else None

        last_exception = None

        for attempt in range(config.max_attempts):
            try:
                if circuit_breaker:
                    return circuit_breaker.call(func, *args, **kwargs)
                else:
                    return func(*args, **kwargs)

            except Exception as e:
                last_exception = e

                if not self._is_retryable_error(e, config):
                    self.logger.info(f"Non-retryable error on attempt {attempt + 1}: {e}")
                    raise

                # Don't retry on last attempt
                if attempt == config.max_attempts - 1:
                    break

                delay = self._calculate_delay(attempt, config)

                self.logger.warning(
                    f"Attempt {attempt + 1} failed, retrying in {delay:.2f}s: {e}",
                    extra={
                        'attempt': attempt + 1,
                        'max_attempts': config.max_attempts,
                        'delay': delay,
                        'error_type': type(e).__name__
                    }
                )

                time.sleep(delay)

        self.logger.error(
            f"All {config.max_attempts} attempts failed",
            extra={'final_error': str(last_exception)}
        )
        raise last_exception

    def _is_retryable_error(self, error: Exception, config: RetryConfig) -> bool:
        """Determine if error should trigger a retry"""

        if isinstance(error, ClientError):
            error_code = error.response.get('Error', {}).get('Code', '')
            return error_code in config.retryable_errors

        if isinstance(error, CircuitOpenError):
            return False

        transient_errors = [
            ConnectionError,
            TimeoutError,
        ]

        return any(isinstance(error, err_type) for err_type in transient_errors)

    def _calculate_delay(self, attempt: int, config: RetryConfig) -> float:
        """Calculate delay based on retry strategy"""

        if config.strategy == RetryStrategy.EXPONENTIAL_BACKOFF:
            delay = config.base_delay * (config.exponential_base ** attempt)
        elif config.strategy == RetryStrategy.LINEAR_BACKOFF:
            delay = config.base_delay * (attempt + 1)
        else:  # FIXED_DELAY
            delay = config.base_delay

        delay = min(delay, config.max_delay)

        # Add jitter to prevent thundering herd
        if config.jitter:
            jitter_range = delay * 0.1
            delay += random.uniform(-jitter_range, jitter_range)

        return max(0.1, delay)  # Minimum 100ms delay

def with_retry(config: RetryConfig = None, circuit_breaker_key: str = None):
    """Decorator for adding retry logic to functions"""

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            retry_handler = RetryHandler(config)
            return retry_handler.retry_call(
                func, *args,
                circuit_breaker_key=circuit_breaker_key,
                **kwargs
            )
        return wrapper
    return decorator

s3_retry_config = RetryConfig(
    max_attempts=3,
    base_delay=0.5,
    max_delay=10.0,
    strategy=RetryStrategy.EXPONENTIAL_BACKOFF,
    retryable_errors=[
        'InternalError',
        'ServiceUnavailable',
        'SlowDown',
        'RequestTimeout'
    ]
)

dynamodb_retry_config = RetryConfig(
    max_attempts=5,
    base_delay=0.1,
    max_delay=5.0,
    strategy=RetryStrategy.EXPONENTIAL_BACKOFF,
    retryable_errors=[
        'ProvisionedThroughputExceededException',
        'ThrottlingException',
        'InternalServerError',
        'ServiceUnavailableException'
    ]
)

# Step Functions and Transcribe control-plane calls
workflow_retry_config = RetryConfig(
    max_attempts=3,
    base_delay=0.5,
    max_delay=8.0,
    strategy=RetryStrategy.EXPONENTIAL_BACKOFF,
    retryable_errors=[
        'ThrottlingException',
        'LimitExceededException',
        'InternalFailureException',
        'ServiceUnavailableException'
    ]
)

def with_s3_retry(circuit_breaker_key: str = "s3"):
    """Retry decorator optimized for S3 calls"""
    return with_retry(s3_retry_config, circuit_breaker_key)

def with_dynamodb_retry(circuit_breaker_key: str = "dynamodb"):
    """Retry decorator optimized for DynamoDB calls"""
    return with_retry(dynamodb_retry_config, circuit_breaker_key)

def with_workflow_retry(circuit_breaker_key: str = "workflow"):
    """Retry decorator for Step Functions / Transcribe control calls"""
    return with_retry(workflow_retry_config, circuit_breaker_key)

class DynamoDBRetryWrapper:
    """Wrapper for DynamoDB table calls with built-in retry logic"""

    def __init__(self, table):
        self.table = table

    @with_dynamodb_retry()
    def put_item(self, Item: dict, **kwargs) -> dict:
        return self.table.put_item(Item=Item, **kwargs)

    @with_dynamodb_retry()
    def get_item(self, Key: dict, **kwargs) -> dict:
        return self.table.get_item(Key=Key, **kwargs)

    @with_dynamodb_retry()
    def update_item(self, Key: dict, **kwargs) -> dict:
        return self.table.update_item(Key=Key, **kwargs)

    @with_dynamodb_retry()
    def query(self, **kwargs) -> dict:
        return self.table.query(**kwargs)

    @with_dynamodb_retry()
    def scan(self, **kwargs) -> dict:
        return self.table.scan(**kwargs)
