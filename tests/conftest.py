"""
Shared test setup: Lambda source root on sys.path, dummy AWS environment,
and in-memory DynamoDB / S3 fakes.
"""
import io
import json
import os
import sys
import threading
from pathlib import Path

import pytest
from botocore.exceptions import ClientError

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT / 'hotline_qa'))
sys.path.insert(0, str(ROOT))

os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("BUCKET_NAME", "hotline-qa-test")
os.environ.setdefault("EVALUATIONS_TABLE", "evaluations-test")
os.environ.setdefault("COUNSELOR_PROFILES_TABLE", "counselor-profiles-test")
os.environ.setdefault("STATE_MACHINE_ARN", "arn:aws:states:us-east-1:123456789012:stateMachine:hotline-qa")
os.environ["ERROR_METRICS_ENABLED"] = "false"


def client_error(code: str, operation: str = "test") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeTable:
    """Thread-safe single-key DynamoDB table honouring attribute_(not_)exists conditions"""

    def __init__(self, key_name: str, sort_key: str = None):
        self.key_name = key_name
        self.sort_key = sort_key
        self.items = {}
        self.lock = threading.Lock()
        self.put_calls = 0

    def _key(self, item):
        if self.sort_key:
            return (item[self.key_name], item[self.sort_key])
        return item[self.key_name]

    def put_item(self, Item, ConditionExpression=None, **kwargs):
        with self.lock:
            self.put_calls += 1
            key = self._key(Item)
            if ConditionExpression and ConditionExpression.startswith("attribute_not_exists") and key in self.items:
                raise client_error("ConditionalCheckFailedException", "PutItem")
            self.items[key] = dict(Item)
        return {}

    def get_item(self, Key, **kwargs):
        with self.lock:
            item = self.items.get(self._key(Key))
        return {"Item": dict(item)} if item else {}

    def update_item(self, Key, UpdateExpression, ExpressionAttributeNames, ExpressionAttributeValues,
                    ConditionExpression=None, **kwargs):
        with self.lock:
            key = self._key(Key)
            if ConditionExpression and ConditionExpression.startswith("attribute_exists") and key not in self.items:
                raise client_error("ConditionalCheckFailedException", "UpdateItem")
            item = self.items.setdefault(key, dict(Key))
            for assignment in UpdateExpression[len("SET "):].split(", "):
                name, value = [p.strip() for p in assignment.split("=")]
                item[ExpressionAttributeNames[name]] = ExpressionAttributeValues[value]
            return {"Attributes": dict(item)}

    def scan(self, **kwargs):
        with self.lock:
            return {"Items": [dict(i) for i in self.items.values()]}

    def query(self, **kwargs):
        with self.lock:
            items = [dict(i) for i in self.items.values()]
        condition = kwargs.get("KeyConditionExpression")
        if condition is not None:
            # Key(...).eq(...) conditions only
            key, value = condition.get_expression()["values"]
            items = [i for i in items if i.get(key.name) == value]
        if kwargs.get("IndexName"):
            items.sort(key=lambda i: str(i.get("EvaluationDate", "")),
                       reverse=not kwargs.get("ScanIndexForward", True))
        if kwargs.get("Limit"):
            items = items[:kwargs["Limit"]]
        if kwargs.get("Select") == "COUNT":
            return {"Count": len(items)}
        return {"Items": items}


class FakeS3:
    """Minimal S3 client: get_object / put_object / head_object over a dict"""

    def __init__(self, objects=None):
        self.objects = dict(objects or {})
        self.get_calls = []

    def put_object(self, Bucket, Key, Body, **kwargs):
        self.objects[Key] = Body if isinstance(Body, bytes) else Body.encode("utf-8")
        return {}

    def get_object(self, Bucket, Key, **kwargs):
        self.get_calls.append(Key)
        if Key not in self.objects:
            raise client_error("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(self.objects[Key])}

    def head_object(self, Bucket, Key):
        if Key not in self.objects:
            raise client_error("404", "HeadObject")
        return {}

    def put_json(self, key, data):
        self.objects[key] = json.dumps(data).encode("utf-8")

    def json(self, key):
        return json.loads(self.objects[key].decode("utf-8"))


@pytest.fixture
def fake_s3():
    return FakeS3()


@pytest.fixture
def profiles_table():
    return FakeTable("CounselorId")


@pytest.fixture
def evaluations_table():
    return FakeTable("CounselorId", "EvaluationId")


@pytest.fixture(autouse=True)
def _reset_circuit_breakers():
    from utils.retry_handler import reset_circuit_breakers
    reset_circuit_breakers()
    yield
    reset_circuit_breakers()
