"""Shared fixtures: moto-backed AWS clients, a sample config and a mock report."""

import json
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import Mock

import boto3
import pytest
from moto import mock_aws

from lighthouse_lambda.config import build_config
from lighthouse_lambda.model import AuditResult

FIXTURES = Path(__file__).parent / "fixtures"
REGION = "us-east-1"
BUCKET = "lighthouse-reports"
QUEUE_NAME = "lighthouse-triggers"


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mocked AWS credentials so no test can reach a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)
    monkeypatch.setenv("USE_MOTO", "1")


@pytest.fixture
def aws(aws_credentials):
    """S3 bucket and SQS queue inside a single moto context."""
    with mock_aws():
        s3 = boto3.client("s3", region_name=REGION)
        s3.create_bucket(Bucket=BUCKET)
        sqs = boto3.client("sqs", region_name=REGION)
        queue_url = sqs.create_queue(QueueName=QUEUE_NAME)["QueueUrl"]
        yield SimpleNamespace(s3=s3, sqs=sqs, bucket=BUCKET, queue_url=queue_url)


@pytest.fixture
def logger():
    return Mock()


@pytest.fixture
def raw_config():
    return {
        "source": [
            {"id": "googlesearch", "url": "https://www.google.com/"},
            {"id": "ebay", "url": "https://www.ebay.com/"},
        ],
        "lighthouse_flags": {"output": ["html", "csv", "json"], "emulatedFormFactor": "desktop"},
        "min_time_between_triggers": 300000,
        "storage": {"bucket_name": BUCKET},
        "warehouse": {"database": "analytics", "schema": "lighthouse", "workgroup_name": "lighthouse"},
        "trigger_queue_url": "https://sqs.us-east-1.amazonaws.com/123456789012/lighthouse-triggers",
    }


@pytest.fixture
def config(raw_config):
    return build_config(raw_config)


@pytest.fixture
def lhr():
    return json.loads((FIXTURES / "mock_lhr.json").read_text(encoding="utf-8"))


@pytest.fixture
def audit_result(lhr):
    return AuditResult(lhr=lhr, report={"html": "<html>report</html>", "csv": "a,b\n1,2\n", "json": "{}"})
