#!/usr/bin/env python3
"""
Bulk submit call recordings for QA evaluation.

Uploads each recording under records/ (which triggers the workflow), then
polls every job through the status API and writes a CSV summary.

    cd hotline_qa && python -m tools.bulk_submit recordings/*.wav --bucket my-bucket --poll

With --local the stages run in this process instead of Step Functions
(the recording must already be in the bucket).
"""
import os, csv, time, argparse
from pathlib import Path

import boto3

from client.status_poller import EvaluationStatusClient, JobStatus

RECORDS_PREFIX = "records/"
OUT_FIELDS = ["file", "jobId", "upload_status", "status", "percentageScore", "band", "error"]


def upload_recording(s3, bucket: str, path: Path) -> str:
    key = f"{RECORDS_PREFIX}{path.name}"
    s3.upload_file(str(path), bucket, key)
    return key


def summarise_result(result: dict) -> dict:
    """Pick the headline numbers out of whichever result artifact was returned"""
    if not result:
        return {"percentageScore": "", "band": ""}
    return {
        "percentageScore": result.get("percentageScore", ""),
        "band": result.get("criteria", ""),
    }


def run_local(bucket: str, key: str) -> dict:
    """Run the evaluation stages in-process for one recording already in S3"""
    from start_workflow.app import build_job_name
    from utils.workflow import EvaluationWorkflow, default_stages
    from utils import artifact_paths

    file_name = artifact_paths.recording_file_name(key)
    stem = artifact_paths.strip_extension(file_name)
    timestamp = int(time.time() * 1000)
    event = {
        "bucket": bucket,
        "key": key,
        "fileName": file_name,
        "fileNameWithoutExt": stem,
        "timestamp": timestamp,
        "jobName": build_job_name(stem, timestamp),
    }
    job = EvaluationWorkflow(default_stages()).run(event)
    return {"jobId": job.job_id, **job.to_status()}


def main():
    ap = argparse.ArgumentParser(description="Bulk submit hotline call recordings for QA evaluation")
    ap.add_argument("recordings", nargs="+", help="Local audio files (or S3 keys with --local)")
    ap.add_argument("--bucket", default=os.getenv("BUCKET_NAME"), help="Recordings bucket")
    ap.add_argument("--out", default="bulk_submissions_out.csv", help="Output CSV file")
    ap.add_argument("--poll", action="store_true", help="Poll each job until it finishes")
    ap.add_argument("--local", action="store_true", help="Run stages in-process instead of Step Functions")
    ap.add_argument("--sleep", type=float, default=0.5, help="Sleep between submissions (seconds)")
    args = ap.parse_args()

    if not args.bucket:
        raise SystemExit("--bucket (or BUCKET_NAME) is required")

    rows_out = []
    s3 = boto3.client("s3")
    status_client = EvaluationStatusClient()

    for i, item in enumerate(args.recordings, start=1):
        if args.local:
            key = item if item.startswith(RECORDS_PREFIX) else f"{RECORDS_PREFIX}{Path(item).name}"
            outcome = run_local(args.bucket, key)
            rows_out.append({
                "file": key, "jobId": outcome["jobId"], "upload_status": "LOCAL",
                "status": outcome["status"], "percentageScore": "", "band": "",
                "error": outcome.get("error", ""),
            })
            print(f"[{i}] {key} -> {outcome['status']}")
            continue

        path = Path(item)
        if not path.is_file():
            rows_out.append({"file": item, "jobId": "", "upload_status": "SKIPPED", "status": "",
                             "percentageScore": "", "band": "", "error": "file not found"})
            continue

        upload_recording(s3, args.bucket, path)
        row = {"file": path.name, "jobId": "", "upload_status": "OK", "status": "uploaded",
               "percentageScore": "", "band": "", "error": ""}

        if args.poll:
            job_id = status_client.resolve_job_id(path.name)
            if not job_id:
                row.update(status=JobStatus.ERROR.value, error="execution not found")
            else:
                final = status_client.poll(job_id)
                row.update(jobId=job_id, status=final.status.value, error=final.error or "")
                row.update(summarise_result(final.result))

        rows_out.append(row)
        print(f"[{i}] {path.name} :: job='{row['jobId']}' -> {row['status']}")
        time.sleep(args.sleep)

    with open(args.out, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=OUT_FIELDS)
        writer.writeheader()
        writer.writerows(rows_out)

    print(f"\nWrote {len(rows_out)} rows to {args.out}")


if __name__ == "__main__":
    main()
