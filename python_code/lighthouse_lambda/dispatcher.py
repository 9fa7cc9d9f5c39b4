"""
Fan-out of a broadcast trigger into per-subject, per-variant triggers.

Subjects are handled in parallel on a thread pool. Within a subject the four
messages are published one after another, and the first failure ends that
subject's sequence. Failures are best effort: they are logged and reported in
the FanOutResult but never stop other subjects.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List

from aws_lambda_powertools import Logger
from mypy_boto3_sqs import SQSClient

from . import core
from .model import FanOutResult


class FanOutDispatcher:
    def __init__(self, sqs_client: SQSClient, queue_url: str, logger: Logger, max_workers: int = 8):
        self.sqs = sqs_client
        self.queue_url = queue_url
        self.logger = logger
        self.max_workers = max_workers

    def publish(self, text: str) -> None:
        self.sqs.send_message(QueueUrl=self.queue_url, MessageBody=core.encode_message(text))

    def _publish_subject(self, subject_id: str, sent: List[str]) -> None:
        for text in core.build_fan_out_messages(subject_id):
            self.logger.info(f"{subject_id}: Sending init trigger message [{text}]")
            self.publish(text)
            self.logger.info(f"{subject_id}: Init trigger message sent [{text}]")
            sent.append(text)

    def dispatch_all(self, subject_ids: Iterable[str]) -> FanOutResult:
        """
        Publishes the four variant triggers for every subject id.

        Args:
            subject_ids: Catalog ids to fan out to.

        Returns:
            A FanOutResult listing published messages and failed subjects.
        """
        ids = list(subject_ids)
        result = FanOutResult()
        if not ids:
            return result

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(ids))) as executor:
            sent: Dict[str, List[str]] = {subject_id: [] for subject_id in ids}
            futures = {
                subject_id: executor.submit(self._publish_subject, subject_id, sent[subject_id])
                for subject_id in ids
            }

        for subject_id, future in futures.items():
            result.published.extend(sent[subject_id])
            try:
                future.result()
            except Exception as e:
                self.logger.exception(
                    f"{subject_id}: Fan-out publish failed.",
                    extra={"error_type": type(e).__name__},
                )
                result.failed[subject_id] = str(e)

        self.logger.info(
            f"Fan-out complete: {len(result.published)} messages published, "
            f"{len(result.failed)} subjects failed."
        )
        return result
