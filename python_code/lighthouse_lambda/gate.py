"""
Idempotency gate for trigger messages.

Each subject has one state blob, ``{subject_id}/state.json``, holding a mapping
of state key to the epoch-millisecond time it was last triggered. A trigger
whose key was seen less than the cooldown window ago is suppressed.

The blob is read, updated and rewritten as a whole. Download-check-upload is
not atomic, so two concurrent invocations for the same subject can both pass
the gate, and the later write drops the other's entry.
"""

import json
import math
from typing import Any, Literal

from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError
from mypy_boto3_s3 import S3Client

from .model import EventStateLoad, GateDecision, TriggerMessage

# "message": one cooldown window per full message text (variant and device
#            included); "subject": one window shared by all of a subject's
#            messages.
StateKeyPolicy = Literal["message", "subject"]

STATE_FILE = "state.json"


def state_blob_key(subject_id: str) -> str:
    return f"{subject_id}/{STATE_FILE}"


def _valid_entry(entry: Any) -> bool:
    created = entry.get("created") if isinstance(entry, dict) else None
    return isinstance(created, (int, float)) and not isinstance(created, bool)


def whole_seconds(delta_ms: int) -> int:
    # Half-up, so 2500 ms reports 3s.
    return math.floor(delta_ms / 1000 + 0.5)


class EventStateGate:
    """Suppresses duplicate triggers within a cooldown window."""

    def __init__(
        self,
        s3_client: S3Client,
        bucket: str,
        cooldown_ms: int,
        logger: Logger,
        key_policy: StateKeyPolicy = "message",
    ):
        self.s3 = s3_client
        self.bucket = bucket
        self.cooldown_ms = cooldown_ms
        self.logger = logger
        self.key_policy = key_policy

    def state_key(self, message: TriggerMessage) -> str:
        return message.subject_id if self.key_policy == "subject" else message.raw

    def load(self, subject_id: str) -> EventStateLoad:
        """
        Reads the persisted state mapping for a subject.

        Returns:
            An EventStateLoad. When the blob does not exist, cannot be fetched
            or does not hold a JSON object, the mapping is empty and
            `missing_reason` describes why. Entries without a numeric
            `created` time are dropped.
        """
        key = state_blob_key(subject_id)
        try:
            obj = self.s3.get_object(Bucket=self.bucket, Key=key)
            states = json.loads(obj["Body"].read())
        except ClientError as e:
            return EventStateLoad(missing_reason=e.response["Error"]["Code"])
        except BotoCoreError as e:
            return EventStateLoad(missing_reason=type(e).__name__)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return EventStateLoad(missing_reason="InvalidJSON")

        if not isinstance(states, dict):
            return EventStateLoad(missing_reason="InvalidJSON")
        return EventStateLoad(states={k: v for k, v in states.items() if _valid_entry(v)})

    def check(self, message: TriggerMessage, now_ms: int) -> GateDecision:
        """
        Checks whether the message was triggered within the cooldown window.

        When the gate is active nothing is written. Otherwise the entry for
        this message's state key is set to `now_ms` and the full mapping,
        including every other key's entry, is written back.

        Args:
            message: The decoded trigger message.
            now_ms: The current time in epoch milliseconds.

        Returns:
            A GateDecision; `delta` is in whole seconds when active.
        """
        state_key = self.state_key(message)
        loaded = self.load(message.subject_id)
        if not loaded.found:
            self.logger.debug(
                f"{message.raw}: No usable event state, starting empty.",
                extra={"reason": loaded.missing_reason},
            )

        entry = loaded.states.get(state_key)
        if entry is not None:
            delta = now_ms - entry["created"]
            if delta < self.cooldown_ms:
                return GateDecision(active=True, delta=whole_seconds(delta))

        loaded.states[state_key] = {"created": now_ms}
        self.s3.put_object(
            Bucket=self.bucket,
            Key=state_blob_key(message.subject_id),
            Body=json.dumps(loaded.states, indent=1).encode("utf-8"),
            ContentType="application/json",
        )
        return GateDecision(active=False)
