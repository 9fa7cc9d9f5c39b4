"""
Persists rendered Lighthouse reports and the raw result log to S3.

Layout under the bucket, for a subject key and the report's fetch time:

    {key}/report_{fetchTime}.html|csv|json   one per configured output format
    {key}/log_{fetchTime}.json               always written
"""

import json
from concurrent.futures import ThreadPoolExecutor
from typing import Sequence, Tuple

from aws_lambda_powertools import Logger
from mypy_boto3_s3 import S3Client

from .exceptions import AuditError
from .model import AuditResult

JSON_CONTENT_TYPE = "application/json"


def report_target(fmt: str) -> Tuple[str, str]:
    """Maps an output format to (file extension, content type); html is the fallback."""
    if fmt == "csv":
        return "csv", "text/csv"
    if fmt == "json":
        return "json", JSON_CONTENT_TYPE
    return "html", "text/html"


class ArtifactWriter:
    def __init__(self, s3_client: S3Client, bucket: str, output_formats: Sequence[str], logger: Logger):
        self.s3 = s3_client
        self.bucket = bucket
        self.output_formats = list(output_formats)
        self.logger = logger

    def _put(self, key: str, body: str, content_type: str) -> None:
        self.s3.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=body.encode("utf-8"),
            ContentType=content_type,
        )

    def _write_report(self, result: AuditResult, key: str, fmt: str) -> None:
        if fmt not in result.report:
            raise AuditError(f"No rendered {fmt} report for {key}")
        ext, content_type = report_target(fmt)
        self.logger.info(f"{key}: Writing {fmt} report to bucket {self.bucket}")
        self._put(f"{key}/report_{result.fetch_time}.{ext}", result.report[fmt], content_type)

    def persist(self, result: AuditResult, key: str) -> None:
        """
        Writes every configured report format concurrently, then the raw log.

        Args:
            result: The audit result holding `lhr` and the rendered reports.
            key: The blob prefix, normally the subject id.

        Raises:
            AuditError: If a configured format has no rendered report.
            botocore.exceptions.ClientError: If an S3 write fails.
        """
        if self.output_formats:
            with ThreadPoolExecutor(max_workers=len(self.output_formats)) as executor:
                futures = [executor.submit(self._write_report, result, key, fmt) for fmt in self.output_formats]
            for future in futures:
                future.result()

        self.logger.info(f"{key}: Writing log to bucket {self.bucket}")
        self._put(
            f"{key}/log_{result.fetch_time}.json",
            json.dumps(result.lhr, indent=1),
            JSON_CONTENT_TYPE,
        )
