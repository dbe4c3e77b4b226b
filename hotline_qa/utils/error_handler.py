#!/usr/bin/env python3
"""
Error handling framework for the Hotline QA Lambda functions

Provides standardized error types, logging, HTTP mapping and input validation.
"""

import json
import os
import re
import traceback
import time
from typing import Dict, Any, Optional, Callable
from datetime import datetime, timezone
from functools import wraps
from enum import Enum
import boto3
from botocore.exceptions import ClientError, BotoCoreError
import logging

class ErrorSeverity(Enum):
    """Error severity levels for proper escalation"""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

class ErrorCategory(Enum):
    """Error categories for monitoring and alerting"""
    USER_INPUT = "USER_INPUT"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    EXTERNAL_SERVICE = "EXTERNAL_SERVICE"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    CONFIGURATION = "CONFIGURATION"
    RESOURCE_LIMIT = "RESOURCE_LIMIT"
    BUSINESS_LOGIC = "BUSINESS_LOGIC"

class HotlineQAError(Exception):
    """Base exception for evaluation pipeline errors"""

    status_code = 500

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.INTERNAL_ERROR,
                 severity: ErrorSeverity = ErrorSeverity.MEDIUM, details: Optional[Dict] = None,
                 correlation_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.correlation_id = correlation_id
        self.timestamp = datetime.now(timezone.utc).isoformat()

class ValidationError(HotlineQAError):
    """Malformed or unsafe input"""
    status_code = 400

    def __init__(self, message: str, field: str = None, **kwargs):
        super().__init__(message, ErrorCategory.USER_INPUT, ErrorSeverity.LOW, **kwargs)
        self.field = field

class NotFoundError(HotlineQAError):
    """Missing job, artifact or profile"""
    status_code = 404

    def __init__(self, message: str, resource: str = None, **kwargs):
        super().__init__(message, ErrorCategory.NOT_FOUND, ErrorSeverity.LOW, **kwargs)
        self.resource = resource

class ConflictError(HotlineQAError):
    """Duplicate identifier on create"""
    status_code = 409

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.CONFLICT, ErrorSeverity.LOW, **kwargs)

class ExternalServiceError(HotlineQAError):
    """External service failures (Bedrock, Transcribe, S3, etc.)"""
    def __init__(self, message: str, service: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        super().__init__(message, ErrorCategory.EXTERNAL_SERVICE, **kwargs)
        self.service = service

class ParseError(HotlineQAError):
    """Model reply could not be parsed as JSON (degraded, non-fatal)"""
    def __init__(self, message: str, raw_text: str = "", **kwargs):
        super().__init__(message, ErrorCategory.BUSINESS_LOGIC, ErrorSeverity.LOW, **kwargs)
        self.raw_text = raw_text

class ErrorHandler:
    """Centralized error handling and logging"""

    def __init__(self, logger: Optional[logging.Logger] = None, metrics_enabled: Optional[bool] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.cloudwatch = None

        if metrics_enabled is None:
            metrics_enabled = os.getenv("ERROR_METRICS_ENABLED", "true").lower() == "true"
        if not metrics_enabled:
            return

        try:
            self.cloudwatch = boto3.client('cloudwatch')
        except Exception:
            self.logger.warning("CloudWatch client not available - metrics disabled")

    def handle_error(self, error: Exception, context: Optional[Dict] = None) -> Dict[str, Any]:
        """Handle and log errors with proper categorization"""

        correlation_id = self._get_correlation_id(context)

        if isinstance(error, HotlineQAError):
            return self._handle_known_error(error, correlation_id)
        else:
            return self._handle_unknown_error(error, context, correlation_id)

    def _handle_known_error(self, error: HotlineQAError, correlation_id: str) -> Dict[str, Any]:
        """Handle known application errors"""

        error_data = {
            'error_id': f"ERR_{int(time.time())}",
            'message': error.message,
            'category': error.category.value,
            'severity': error.severity.value,
            'details': error.details,
            'correlation_id': correlation_id,
            'timestamp': error.timestamp
        }

        # Log based on severity
        if error.severity in [ErrorSeverity.CRITICAL, ErrorSeverity.HIGH]:
            self.logger.error("Application error", extra={'error_data': error_data})
        elif error.severity == ErrorSeverity.MEDIUM:
            self.logger.warning("Application warning", extra={'error_data': error_data})
        else:
            self.logger.info("Application info", extra={'error_data': error_data})

        self._send_error_metric(error.category.value, error.severity.value)

        return self._format_error_response(error_data)

    def _handle_unknown_error(self, error: Exception, context: Optional[Dict],
                            correlation_id: str) -> Dict[str, Any]:
        """Handle unexpected errors"""

        category, severity = self._categorize_error(error)

        error_data = {
            'error_id': f"ERR_{int(time.time())}",
            'message': str(error),
            'error_type': type(error).__name__,
            'category': category.value,
            'severity': severity.value,
            'traceback': traceback.format_exc(),
            'context': context or {},
            'correlation_id': correlation_id,
            'timestamp': datetime.now(timezone.utc).isoformat()
        }

        self.logger.error("Unhandled error", extra={'error_data': error_data})
        self._send_error_metric(category.value, severity.value)

        # Internal detail stays in the logs
        public_data = dict(error_data, message="Internal server error")
        return self._format_error_response(public_data, include_traceback=False)

    def _categorize_error(self, error: Exception) -> tuple[ErrorCategory, ErrorSeverity]:
        """Categorize unknown errors based on type"""

        if isinstance(error, (ClientError, BotoCoreError)):
            return ErrorCategory.EXTERNAL_SERVICE, ErrorSeverity.HIGH
        elif isinstance(error, (ValueError, TypeError)):
            return ErrorCategory.USER_INPUT, ErrorSeverity.LOW
        elif isinstance(error, KeyError):
            return ErrorCategory.CONFIGURATION, ErrorSeverity.MEDIUM
        elif isinstance(error, MemoryError):
            return ErrorCategory.RESOURCE_LIMIT, ErrorSeverity.CRITICAL
        else:
            return ErrorCategory.INTERNAL_ERROR, ErrorSeverity.HIGH

    def _send_error_metric(self, category: str, severity: str):
        """Send error metrics to CloudWatch"""
        if not self.cloudwatch:
            return

        try:
            self.cloudwatch.put_metric_data(
                Namespace='HotlineQA/Errors',
                MetricData=[
                    {
                        'MetricName': 'ErrorCount',
                        'Dimensions': [
                            {'Name': 'Category', 'Value': category},
                            {'Name': 'Severity', 'Value': severity}
                        ],
                        'Value': 1,
                        'Unit': 'Count',
                        'Timestamp': datetime.now(timezone.utc)
                    }
                ]
            )
        except Exception as e:
            self.logger.warning(f"Failed to send CloudWatch metric: {e}")

    def _get_correlation_id(self, context: Optional[Dict]) -> str:
        """Extract or generate correlation ID"""
        if context and 'correlation_id' in context:
            return context['correlation_id']
        elif context and 'aws_request_id' in context:
            return context['aws_request_id']
        else:
            return f"corr_{int(time.time())}"

    def _format_error_response(self, error_data: Dict, include_traceback: bool = False) -> Dict[str, Any]:
        """Format error response for API"""

        response = {
            'error': {
                'error_id': error_data['error_id'],
                'message': error_data['message'],
                'category': error_data['category'],
                'timestamp': error_data['timestamp'],
                'correlation_id': error_data['correlation_id']
            }
        }

        if include_traceback and error_data.get('traceback'):
            response['error']['traceback'] = error_data['traceback']

        return response

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Headers': 'Content-Type,X-Amz-Date,Authorization,X-Api-Key,X-Amz-Security-Token',
    'Access-Control-Allow-Methods': 'GET,POST,PUT,DELETE,OPTIONS'
}

def is_api_gateway_event(event: Any) -> bool:
    """Step Functions and S3 events don't have 'httpMethod' or 'requestContext'"""
    return isinstance(event, dict) and (
        'httpMethod' in event or
        'requestContext' in event or
        'headers' in event
    )

def lambda_error_handler(correlation_id_field: str = 'aws_request_id'):
    """Decorator for Lambda function error handling"""

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
            error_handler = ErrorHandler()

            correlation_id = getattr(context, correlation_id_field, f"req_{int(time.time())}")
            context_dict = {
                'correlation_id': correlation_id,
                'function_name': getattr(context, 'function_name', 'unknown'),
                'aws_request_id': getattr(context, 'aws_request_id', None)
            }

            try:
                logger = logging.getLogger()
                logger.info("Function invoked", extra={
                    'correlation_id': correlation_id,
                    'event_keys': list(event.keys()) if isinstance(event, dict) else 'non-dict'
                })

                result = func(event, context)

                logger.info("Function completed successfully", extra={
                    'correlation_id': correlation_id
                })

                return result

            except Exception as e:
                error_response = error_handler.handle_error(e, context_dict)

                if is_api_gateway_event(event):
                    status_code = e.status_code if isinstance(e, HotlineQAError) else 500
                    return {
                        'statusCode': status_code,
                        'headers': {
                            **CORS_HEADERS,
                            'Content-Type': 'application/json',
                            'X-Correlation-ID': correlation_id
                        },
                        'body': json.dumps(error_response)
                    }
                else:
                    # For Step Functions, raise the error so it can be caught/retried
                    raise

        return wrapper
    return decorator

# Injection patterns rejected anywhere transcript or profile text is accepted
INJECTION_PATTERNS = [
    re.compile(r'<\s*script\b', re.IGNORECASE),
    re.compile(r'<\s*iframe\b', re.IGNORECASE),
    re.compile(r'javascript\s*:', re.IGNORECASE),
    re.compile(r'<[^>]*\bon[a-z]+\s*=', re.IGNORECASE),
]

EXECUTION_ARN_PATTERN = re.compile(r'^arn:aws[a-zA-Z-]*:states:[a-z0-9-]+:\d{12}:execution:[A-Za-z0-9_-]+:[A-Za-z0-9_.-]+$')

class InputValidator:
    """Input validation utilities"""

    @staticmethod
    def validate_required_fields(data: Dict, required_fields: list, context: str = "input") -> None:
        """Validate required fields are present"""
        missing_fields = [field for field in required_fields if not data.get(field)]

        if missing_fields:
            raise ValidationError(
                f"Missing required fields in {context}: {', '.join(missing_fields)}",
                details={'missing_fields': missing_fields, 'context': context}
            )

    @staticmethod
    def validate_string_field(value: Any, field_name: str, min_length: int = 1,
                            max_length: int = 10000) -> str:
        """Validate string field with length constraints"""
        if not isinstance(value, str):
            raise ValidationError(f"{field_name} must be a string", field=field_name)

        value = value.strip()

        if len(value) < min_length:
            raise ValidationError(
                f"{field_name} must be at least {min_length} characters",
                field=field_name
            )

        if len(value) > max_length:
            raise ValidationError(
                f"{field_name} must be no more than {max_length} characters",
                field=field_name
            )

        return value

    @staticmethod
    def contains_injection(text: str) -> bool:
        """True if the text carries markup or script-injection patterns"""
        return any(p.search(text) for p in INJECTION_PATTERNS)

    @staticmethod
    def validate_file_name(file_name: Any, max_length: int = 100) -> str:
        """Sanitize a recording file name to the safe character set"""
        if not isinstance(file_name, str) or not file_name:
            raise ValidationError("fileName must be a string", field="fileName")

        sanitized = re.sub(r'[^a-zA-Z0-9_.-]', '', file_name)

        if not sanitized:
            raise ValidationError("Invalid fileName format", field="fileName")

        if '..' in sanitized:
            raise ValidationError("Path traversal detected in fileName", field="fileName")

        if len(sanitized) > max_length:
            raise ValidationError(
                f"fileName must be less than {max_length} characters",
                field="fileName"
            )

        return sanitized

    @staticmethod
    def validate_file_id(file_id: Any) -> str:
        """File ids are job names: letters, numbers, hyphens, underscores"""
        if not isinstance(file_id, str) or not file_id:
            raise ValidationError("fileId is required and must be a string", field="fileId")

        if not re.match(r'^[a-zA-Z0-9_-]+$', file_id):
            raise ValidationError(
                "fileId may only contain letters, numbers, hyphens and underscores",
                field="fileId",
                details={'provided_value': file_id[:100]}
            )

        if len(file_id) > 100:
            raise ValidationError("fileId must be less than 100 characters", field="fileId")

        return file_id

    @staticmethod
    def validate_execution_arn(execution_arn: Any) -> str:
        """Validate Step Functions execution ARN format"""
        if not isinstance(execution_arn, str) or not EXECUTION_ARN_PATTERN.match(execution_arn):
            raise ValidationError("Invalid executionArn format", field="executionArn")
        return execution_arn

    @staticmethod
    def validate_counselor_id(counselor_id: Any) -> str:
        """Reject (rather than strip) unsafe counselor ids"""
        if not isinstance(counselor_id, str) or not counselor_id:
            raise ValidationError("CounselorId is required and must be a string", field="counselorId")

        if counselor_id != re.sub(r'[^a-zA-Z0-9_-]', '', counselor_id):
            raise ValidationError(
                "CounselorId contains invalid characters - only alphanumeric, underscore, and hyphen allowed",
                field="counselorId"
            )

        if len(counselor_id) < 2 or len(counselor_id) > 50:
            raise ValidationError("CounselorId must be between 2 and 50 characters", field="counselorId")

        return counselor_id

    @staticmethod
    def validate_counselor_name(counselor_name: Any) -> str:
        """Letters, spaces, hyphens and apostrophes only"""
        if not isinstance(counselor_name, str) or not counselor_name:
            raise ValidationError("CounselorName is required and must be a string", field="counselorName")

        clean_name = re.sub(r"[^a-zA-Z\s'-]", '', counselor_name).strip()
        if clean_name != counselor_name.strip():
            raise ValidationError(
                "CounselorName contains invalid characters - only letters, spaces, hyphens, and apostrophes allowed",
                field="counselorName"
            )

        if len(clean_name) < 2 or len(clean_name) > 100:
            raise ValidationError("CounselorName must be between 2 and 100 characters", field="counselorName")

        return clean_name

# Utility functions for common error scenarios
def is_not_found(error: Exception) -> bool:
    """True for S3 missing-object errors from get_object or head_object"""
    if isinstance(error, ClientError):
        code = error.response.get('Error', {}).get('Code', '')
        return code in ('NoSuchKey', '404', 'NotFound')
    return False

def is_conditional_check_failure(error: Exception) -> bool:
    """True when a DynamoDB conditional write was rejected"""
    if isinstance(error, ClientError):
        return error.response.get('Error', {}).get('Code', '') == 'ConditionalCheckFailedException'
    return False
