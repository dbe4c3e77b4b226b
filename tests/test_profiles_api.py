"""
Tests for the counselor profile and evaluation listing APIs
"""
import json
from unittest.mock import Mock, patch

import pytest

from manage_counselor_profiles import app as profiles_app
from list_evaluations import app as list_app
from utils.aws_clients import AWSClients


@pytest.fixture
def tables(profiles_table, evaluations_table):
    by_name = {
        "counselor-profiles-test": profiles_table,
        "evaluations-test": evaluations_table,
    }
    with patch.object(AWSClients, "table", side_effect=lambda name: by_name[name]):
        yield profiles_table, evaluations_table


def _call(handler, method, body=None, path=None, qs=None):
    event = {"httpMethod": method, "pathParameters": path, "queryStringParameters": qs}
    if body is not None:
        event["body"] = json.dumps(body)
    resp = handler(event, Mock(aws_request_id="req-1"))
    return resp["statusCode"], json.loads(resp["body"])


def _evaluation(counselor_id, evaluation_id, date, pct):
    return {"CounselorId": counselor_id, "EvaluationId": evaluation_id,
            "EvaluationDate": date, "PercentageScore": pct}


class TestCreateProfile:

    def test_create_returns_201(self, tables):
        status, body = _call(profiles_app.lambda_handler, "POST",
                             {"counselorId": "jane_doe", "counselorName": "Jane Doe",
                              "programType": ["988 Nebraska", "<b>x</b>"]})

        assert status == 201
        assert body["CounselorId"] == "jane_doe"
        assert body["ProgramType"] == ["988 Nebraska", "bx/b"]
        assert body["UpdatedBy"] == "api"
        assert "jane_doe" in tables[0].items

    def test_default_program(self, tables):
        status, body = _call(profiles_app.lambda_handler, "POST",
                             {"counselorId": "jane_doe", "counselorName": "Jane Doe"})
        assert status == 201
        assert body["ProgramType"] == ["National Hotline Program"]

    def test_duplicate_returns_409(self, tables):
        payload = {"counselorId": "jane_doe", "counselorName": "Jane Doe"}
        _call(profiles_app.lambda_handler, "POST", payload)

        status, body = _call(profiles_app.lambda_handler, "POST", {**payload, "counselorName": "Other Name"})

        assert status == 409
        assert tables[0].items["jane_doe"]["CounselorName"] == "Jane Doe"

    @pytest.mark.parametrize("payload", [
        {"counselorId": "jane doe", "counselorName": "Jane Doe"},
        {"counselorId": "jane_doe", "counselorName": "Jane <script>"},
        {"counselorId": "jane_doe"},
        {"counselorId": "jane_doe", "counselorName": "Jane Doe", "programType": "988 Nebraska"},
    ])
    def test_invalid_input_returns_400(self, tables, payload):
        status, _ = _call(profiles_app.lambda_handler, "POST", payload)
        assert status == 400

    def test_malformed_body_returns_400(self, tables):
        resp = profiles_app.lambda_handler({"httpMethod": "POST", "body": "{not json"}, Mock())
        assert resp["statusCode"] == 400


class TestUpdateProfile:

    def test_update_existing(self, tables):
        _call(profiles_app.lambda_handler, "POST", {"counselorId": "jane_doe", "counselorName": "Jane Doe"})

        status, body = _call(profiles_app.lambda_handler, "PUT", {"isActive": "false"},
                             path={"counselorId": "jane_doe"})

        assert status == 200
        assert body["IsActive"] is False
        assert body["CounselorName"] == "Jane Doe"

    def test_update_missing_returns_404_without_creating(self, tables):
        status, _ = _call(profiles_app.lambda_handler, "PUT", {"counselorName": "Ghost Person"},
                          path={"counselorId": "ghost"})

        assert status == 404
        assert "ghost" not in tables[0].items

    def test_update_without_fields_returns_400(self, tables):
        _call(profiles_app.lambda_handler, "POST", {"counselorId": "jane_doe", "counselorName": "Jane Doe"})
        status, body = _call(profiles_app.lambda_handler, "PUT", {}, path={"counselorId": "jane_doe"})

        assert status == 400
        assert body["error"]["message"] == "No valid fields to update"


class TestGetProfiles:

    def test_get_one_with_evaluation_stats(self, tables):
        profiles, evaluations = tables
        _call(profiles_app.lambda_handler, "POST", {"counselorId": "jane_doe", "counselorName": "Jane Doe"})
        evaluations.put_item(Item=_evaluation("jane_doe", "eval_1", "2024-01-01T00:00:00+00:00", 80))
        evaluations.put_item(Item=_evaluation("jane_doe", "eval_2", "2024-02-01T00:00:00+00:00", 90))
        evaluations.put_item(Item=_evaluation("john_roe", "eval_3", "2024-03-01T00:00:00+00:00", 70))

        status, body = _call(profiles_app.lambda_handler, "GET", path={"counselorId": "jane_doe"})

        assert status == 200
        assert body["EvaluationCount"] == 2
        assert body["LastEvaluationDate"] == "2024-02-01T00:00:00+00:00"

    def test_get_missing_returns_404(self, tables):
        status, _ = _call(profiles_app.lambda_handler, "GET", path={"counselorId": "nobody"})
        assert status == 404

    def test_get_all(self, tables):
        for cid, name in [("jane_doe", "Jane Doe"), ("john_roe", "John Roe")]:
            _call(profiles_app.lambda_handler, "POST", {"counselorId": cid, "counselorName": name})

        status, body = _call(profiles_app.lambda_handler, "GET")

        assert status == 200
        assert sorted(p["CounselorId"] for p in body) == ["jane_doe", "john_roe"]
        assert all(p["EvaluationCount"] == 0 for p in body)

    def test_unsupported_method(self, tables):
        status, _ = _call(profiles_app.lambda_handler, "DELETE", path={"counselorId": "jane_doe"})
        assert status == 405


class TestListEvaluations:

    def test_lists_newest_first(self, tables):
        _, evaluations = tables
        evaluations.put_item(Item=_evaluation("jane_doe", "eval_1", "2024-01-01T00:00:00+00:00", 80))
        evaluations.put_item(Item=_evaluation("john_roe", "eval_2", "2024-03-01T00:00:00+00:00", 70))
        evaluations.put_item(Item=_evaluation("jane_doe", "eval_3", "2024-02-01T00:00:00+00:00", 90))

        status, body = _call(list_app.lambda_handler, "GET", qs={"limit": "2"})

        assert status == 200
        assert [i["EvaluationId"] for i in body["items"]] == ["eval_2", "eval_3"]

    def test_filter_by_counselor(self, tables):
        _, evaluations = tables
        evaluations.put_item(Item=_evaluation("jane_doe", "eval_1", "2024-01-01T00:00:00+00:00", 80))
        evaluations.put_item(Item=_evaluation("john_roe", "eval_2", "2024-03-01T00:00:00+00:00", 70))

        status, body = _call(list_app.lambda_handler, "GET", qs={"counselorId": "jane_doe"})

        assert status == 200
        assert [i["CounselorId"] for i in body["items"]] == ["jane_doe"]

    def test_invalid_counselor_id(self, tables):
        status, _ = _call(list_app.lambda_handler, "GET", qs={"counselorId": "x;drop"})
        assert status == 400

    @pytest.mark.parametrize("raw,expected", [(None, 200), ("5", 5), ("0", 1), ("5000", 1000), ("abc", 200)])
    def test_parse_limit(self, raw, expected):
        assert list_app._parse_limit(raw) == expected
