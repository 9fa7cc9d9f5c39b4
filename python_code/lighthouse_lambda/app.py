"""
Main AWS Lambda handler for the Lighthouse audit pipeline.

This module serves as the primary entry point for the function.
Its responsibilities include:
  - Loading and validating configuration at import, failing the cold start.
  - Creating the AWS clients once per container and wiring every component.
  - Receiving trigger messages from the SQS event source.
  - Handing each message to the orchestrator and reporting what was handled.
"""

import json
from functools import lru_cache
from typing import Any, Dict, List

from aws_lambda_powertools import Logger

from . import clients
from .config import RuntimeEnvironment, get_env_var, load_config
from .dispatcher import FanOutDispatcher
from .gate import EventStateGate
from .model import SQSEventRecord
from .orchestrator import AuditOrchestrator
from .runner import LighthouseRunner
from .storage import ArtifactWriter
from .warehouse import WarehouseLoader, load_table_schema

logger = Logger(
    service=get_env_var("SERVICE_NAME", "lighthouse-audit"),
    level=get_env_var("LOG_LEVEL", "INFO").upper(),
)

# Fails the container at import, before any trigger is accepted.
config = load_config()
logger.info("Configuration validated successfully")


@lru_cache(maxsize=1)
def get_orchestrator() -> AuditOrchestrator:
    """
    Builds the orchestrator and its collaborators once per container.

    Clients are created on first use rather than at import.
    """
    env = RuntimeEnvironment.from_env()
    s3, sqs, redshift_data = clients.get_boto_clients()

    return AuditOrchestrator(
        config=config,
        env=env,
        gate=EventStateGate(
            s3, config.bucket_name, config.min_time_between_triggers, logger, config.state_key_policy
        ),
        dispatcher=FanOutDispatcher(sqs, config.trigger_queue_url, logger, config.fan_out_workers),
        runner=LighthouseRunner(
            logger,
            lighthouse_bin=get_env_var("LIGHTHOUSE_BIN", "lighthouse"),
            chromedriver_path=get_env_var("CHROMEDRIVER_PATH", "") or None,
            chrome_binary=get_env_var("CHROME_BINARY", "") or None,
        ),
        writer=ArtifactWriter(s3, config.bucket_name, config.output_formats, logger),
        loader=WarehouseLoader(
            redshift_data, config.warehouse, load_table_schema(), logger, config.warehouse_poll_interval
        ),
        logger=logger,
    )


def _build_response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    """Centralized helper to build the final Lambda response."""
    return {"statusCode": status_code, "body": json.dumps(body)}


@logger.inject_lambda_context
def handler(event: Dict, context: Any) -> Dict[str, Any]:
    """
    Main Lambda entry point.

    Every SQS record body is one base64-encoded trigger message. Records are
    processed in order and failures are contained per message by the
    orchestrator, so the batch is always acknowledged.
    """
    records: List[SQSEventRecord] = event.get("Records", [])
    if not records:
        return _build_response(200, {"message": "No messages to process."})

    orchestrator = get_orchestrator()
    logger.info(f"Received {len(records)} messages to process.")
    for record in records:
        orchestrator.handle(record["body"])

    return _build_response(200, {"processed": len(records)})
