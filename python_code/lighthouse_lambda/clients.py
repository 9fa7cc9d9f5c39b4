"""
A factory module for creating and providing boto3 clients.

This module is the core of the Dependency Injection (DI) pattern for the
application. The handler asks it for clients once per container and passes
them into each component's constructor, so tests can hand the same components
moto-backed or stubbed clients instead.
"""

import logging
import os
from typing import NamedTuple

import boto3
import botocore.config

from mypy_boto3_redshift_data import RedshiftDataAPIServiceClient
from mypy_boto3_s3 import S3Client
from mypy_boto3_sqs import SQSClient

logger = logging.getLogger(__name__)

# A shared retry configuration for the clients the pipeline talks to. The
# pipeline itself never retries; this only absorbs throttling inside one call.
BOTO_CONFIG_RETRYABLE = botocore.config.Config(
    retries={"max_attempts": 5, "mode": "adaptive"}
)


class BotoClients(NamedTuple):
    s3: S3Client
    sqs: SQSClient
    redshift_data: RedshiftDataAPIServiceClient


def get_boto_clients() -> BotoClients:
    """
    Returns the AWS service clients used by the pipeline.

    It inspects the environment for a `USE_MOTO` flag. If present, it's assumed
    that `moto` is active and will intercept the `boto3` calls. Otherwise real
    clients are created.

    The AWS region is explicitly read from the environment to ensure consistent
    and predictable behavior across all clients.

    Returns:
        A BotoClients tuple of (s3, sqs, redshift_data).
    """
    aws_region = os.environ.get("AWS_REGION")
    if not aws_region:
        logger.warning("AWS_REGION not set, boto3 will attempt to resolve it.")

    if os.environ.get("USE_MOTO"):
        logger.info("MOTO ENABLED: Returning mocked AWS clients.")

    s3_client: S3Client = boto3.client(
        "s3", region_name=aws_region, config=BOTO_CONFIG_RETRYABLE
    )
    sqs_client: SQSClient = boto3.client(
        "sqs", region_name=aws_region, config=BOTO_CONFIG_RETRYABLE
    )
    redshift_data_client: RedshiftDataAPIServiceClient = boto3.client(
        "redshift-data", region_name=aws_region, config=BOTO_CONFIG_RETRYABLE
    )

    return BotoClients(s3=s3_client, sqs=sqs_client, redshift_data=redshift_data_client)
