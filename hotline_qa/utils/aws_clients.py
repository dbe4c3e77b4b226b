"""
AWS Client Management - Centralized boto3 client creation

This module provides singleton boto3 clients to avoid duplicate initialization
across Lambda functions. Clients are created once per Lambda container lifecycle.
"""
import boto3
from typing import Optional
from constants import AWS_REGION


class AWSClients:
    """Singleton manager for AWS service clients"""

    _s3: Optional[object] = None
    _stepfunctions: Optional[object] = None
    _transcribe: Optional[object] = None
    _dynamodb: Optional[object] = None

    @classmethod
    def s3(cls):
        """Get S3 client for recordings, transcripts and result artifacts"""
        if cls._s3 is None:
            cls._s3 = boto3.client("s3", region_name=AWS_REGION)
        return cls._s3

    @classmethod
    def stepfunctions(cls):
        """Get Step Functions client for workflow orchestration"""
        if cls._stepfunctions is None:
            cls._stepfunctions = boto3.client("stepfunctions", region_name=AWS_REGION)
        return cls._stepfunctions

    @classmethod
    def transcribe(cls):
        """Get Transcribe client for call analytics jobs"""
        if cls._transcribe is None:
            cls._transcribe = boto3.client("transcribe", region_name=AWS_REGION)
        return cls._transcribe

    @classmethod
    def dynamodb(cls):
        """Get DynamoDB resource (document API) for counselor tables"""
        if cls._dynamodb is None:
            cls._dynamodb = boto3.resource("dynamodb", region_name=AWS_REGION)
        return cls._dynamodb

    @classmethod
    def table(cls, name: str):
        return cls.dynamodb().Table(name)

