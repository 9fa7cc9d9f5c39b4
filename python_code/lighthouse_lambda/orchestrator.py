"""
Sequences one audit invocation from trigger message to warehouse row.

The orchestrator owns top-level error containment: an invocation either
completes, stops early for a known reason (unknown subject, active cooldown),
or fails and is logged. It never raises, because the trigger has no caller
to report back to.
"""

import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, List, Optional

import requests
from aws_lambda_powertools import Logger

from . import core
from .config import PipelineConfig, RuntimeEnvironment
from .dispatcher import FanOutDispatcher
from .gate import EventStateGate, whole_seconds
from .model import FanOutResult, NormalizedRecord, Subject
from .normalizer import normalize_report
from .runner import LighthouseRunner
from .storage import ArtifactWriter
from .warehouse import WarehouseLoader


def epoch_millis() -> int:
    return int(time.time() * 1000)


class AuditOrchestrator:
    """
    Entry point for one trigger message.

    All collaborators are constructed by the caller and passed in; nothing
    here creates a client.
    """

    def __init__(
        self,
        config: PipelineConfig,
        env: RuntimeEnvironment,
        gate: EventStateGate,
        dispatcher: FanOutDispatcher,
        runner: LighthouseRunner,
        writer: ArtifactWriter,
        loader: WarehouseLoader,
        logger: Logger,
        session: Optional[requests.Session] = None,
        clock: Callable[[], int] = epoch_millis,
        job_id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.config = config
        self.env = env
        self.gate = gate
        self.dispatcher = dispatcher
        self.runner = runner
        self.writer = writer
        self.loader = loader
        self.logger = logger
        self.session = session or requests.Session()
        self.clock = clock
        self.job_id_factory = job_id_factory

    def resolve_catalog(self) -> List[Subject]:
        """Returns the static subject list, or the external one if SOURCE_URL is set."""
        if not self.env.source_url:
            return list(self.config.source)
        return core.fetch_external_catalog(self.session, self.env.source_url, self.env.source_auth)

    def handle(self, payload: str) -> Optional[FanOutResult]:
        """
        Processes one trigger payload. Never raises.

        Returns:
            The FanOutResult for a broadcast message, otherwise None.
        """
        start_time = datetime.now(timezone.utc)
        try:
            return self._handle(payload)
        except Exception as e:
            latency_ms = int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)
            self.logger.exception(
                "Audit invocation failed.",
                extra={"error_type": type(e).__name__, "error_message": str(e), "latency_ms": latency_ms},
            )
            return None

    def _handle(self, payload: str) -> Optional[FanOutResult]:
        catalog = self.resolve_catalog()
        message = core.decode_message(payload)

        if message.is_broadcast:
            return self.dispatcher.dispatch_all([subject["id"] for subject in catalog])

        subject = core.find_subject(catalog, message.subject_id)
        if subject is None:
            self.logger.error("No valid message found!", extra={"trigger_message": message.raw})
            return None

        subject_id, url = subject["id"], subject["url"]
        flags = core.resolve_lighthouse_flags(
            self.config.lighthouse_flags, message, self.env.third_party_block_list
        )
        self.logger.info(
            f"{message.raw}: Received message to start with URL {url}, "
            f"third party {message.variant_flag}, mode {message.device_mode}",
            extra={"catalog_size": len(catalog), "external_catalog": bool(self.env.source_url)},
        )

        decision = self.gate.check(message, self.clock())
        if decision.active:
            cooldown_s = whole_seconds(self.config.min_time_between_triggers)
            self.logger.info(f"{message.raw}: Found active event ({decision.delta}s < {cooldown_s}s), aborting...")
            return None

        result = self.runner.run(subject_id, url, flags)

        with ThreadPoolExecutor(max_workers=2) as executor:
            persisted = executor.submit(self.writer.persist, result, subject_id)
            normalized = executor.submit(normalize_report, result.lhr, subject_id)
        persisted.result()
        record: NormalizedRecord = normalized.result()

        job_id = self.job_id_factory()
        record["job_id"] = job_id
        self.logger.info(f"{subject_id}: Warehouse job with ID {job_id} starting for {url}")

        self.loader.ensure_table()
        self.loader.insert_record(record)
        return None
