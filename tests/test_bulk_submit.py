"""
Tests for the bulk submission tool
"""
from unittest.mock import Mock, patch

from tools import bulk_submit
from utils.workflow import JobRecord, JobState


def test_summarise_result():
    assert bulk_submit.summarise_result(None) == {"percentageScore": "", "band": ""}
    assert bulk_submit.summarise_result({"percentageScore": 82.6, "criteria": "Meets Criteria"}) == {
        "percentageScore": 82.6, "band": "Meets Criteria"}


def test_upload_recording(tmp_path):
    path = tmp_path / "Jane_Doe_4412.wav"
    path.write_bytes(b"RIFF")
    s3 = Mock()

    key = bulk_submit.upload_recording(s3, "bucket", path)

    assert key == "records/Jane_Doe_4412.wav"
    s3.upload_file.assert_called_once_with(str(path), "bucket", key)


def test_run_local_builds_workflow_input():
    seen = {}

    def fake_run(self, event, job=None):
        seen.update(event)
        job = JobRecord(event["jobName"])
        job.transition(JobState.SUCCEEDED)
        return job

    with patch("utils.workflow.EvaluationWorkflow.run", fake_run), \
            patch("utils.workflow.default_stages", return_value=[]):
        outcome = bulk_submit.run_local("bucket", "records/Jane_Doe_4412.wav")

    assert seen["fileName"] == "Jane_Doe_4412.wav"
    assert seen["fileNameWithoutExt"] == "Jane_Doe_4412"
    assert seen["jobName"].startswith("Jane_Doe_4412-")
    assert outcome["jobId"] == seen["jobName"]
    assert outcome["status"] == "SUCCEEDED"
    assert outcome["isSuccessful"] is True
