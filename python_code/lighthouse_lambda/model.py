"""
Data models for the Lighthouse audit pipeline.

This module defines the core data structures passed between the orchestrator
and its collaborators. Using dataclasses and TypedDicts keeps the data
contracts explicit, statically checked by mypy, and self-documenting.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TypedDict

BROADCAST_ID = "all"
SEPARATOR = "_"
THIRD_PARTY_INCLUDED = "thirdPartyIncluded"
THIRD_PARTY_BLOCKED = "thirdPartyBlocked"
DEVICE_MODES = ("mobile", "desktop")


class SQSEventRecord(TypedDict):
    """
    Represents the structure of a single SQS message record from a Lambda event.

    Only the attributes read by the handler are declared; the body carries the
    base64-encoded trigger message.
    """

    messageId: str
    body: str


class Subject(TypedDict):
    """A single auditable page from the subject catalog."""

    id: str
    url: str


@dataclass(frozen=True)
class TriggerMessage:
    """
    A decoded trigger message of the form ``subjectId[_variantFlag[_deviceMode]]``.

    Attributes:
        raw: The full decoded text. Used verbatim as the idempotency key under
             the default state-key policy.
        subject_id: Either the broadcast sentinel ``"all"`` or a catalog id.
        variant_flag: ``thirdPartyIncluded``/``thirdPartyBlocked`` or None.
        device_mode: Emulated form factor (``mobile``/``desktop``) or None.
    """

    raw: str
    subject_id: str
    variant_flag: Optional[str] = None
    device_mode: Optional[str] = None

    @property
    def is_broadcast(self) -> bool:
        return self.subject_id == BROADCAST_ID

    @property
    def blocks_third_party(self) -> bool:
        return self.variant_flag == THIRD_PARTY_BLOCKED


@dataclass
class AuditResult:
    """
    The output of one Lighthouse run.

    Attributes:
        lhr: The opaque Lighthouse result object (the parsed JSON report).
        report: Rendered artifacts keyed by output format (html/csv/json).
    """

    lhr: Dict[str, Any]
    report: Dict[str, str] = field(default_factory=dict)

    @property
    def fetch_time(self) -> str:
        return self.lhr["fetchTime"]


class MetricRecord(TypedDict):
    raw_value: Any
    score: Any


class NormalizedRecord(TypedDict, total=False):
    """
    One row of the analytical ``reports`` table.

    Every category section is a single-element list so that it maps onto a
    repeated record column. ``job_id`` is attached by the orchestrator after
    normalization and is therefore optional here.
    """

    fetch_time: str
    site_url: str
    site_id: str
    user_agent: str
    emulated_as: Optional[str]
    blocked_urls: List[str]
    accessibility: List[Dict[str, Any]]
    best_practices: List[Dict[str, Any]]
    performance: List[Dict[str, Any]]
    pwa: List[Dict[str, Any]]
    seo: List[Dict[str, Any]]
    job_id: str


class EventStateEntry(TypedDict):
    created: int


@dataclass
class EventStateLoad:
    """
    The outcome of reading a subject's persisted event-state blob.

    A missing or unreadable blob is a normal outcome, not an error: `states`
    is then empty and `missing_reason` says why.

    Attributes:
        states: Mapping of state key to ``{"created": epoch_millis}``.
        missing_reason: None when the blob was read and parsed successfully.
    """

    states: Dict[str, EventStateEntry] = field(default_factory=dict)
    missing_reason: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.missing_reason is None


@dataclass
class GateDecision:
    """
    Result of an idempotency check.

    Attributes:
        active: True if an earlier trigger for the same key is still inside
                the cooldown window and this invocation must stop.
        delta: Seconds since the earlier trigger, only set when active.
    """

    active: bool
    delta: Optional[int] = None


@dataclass
class FanOutResult:
    """
    Outcome of a broadcast fan-out.

    Attributes:
        published: Every message text that was successfully published.
        failed: Subject id mapped to the error that stopped its sequence.
    """

    published: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
