"""
Core business logic for the Lighthouse audit pipeline.

These functions are designed to be "pure" and testable, containing no AWS SDK
calls and no global state. Anything with side effects (the HTTP session for
the external catalog) is passed in as an argument by the caller.
"""

import base64
import binascii
import copy
from typing import Any, Dict, Iterable, List, Mapping, Optional

import requests

from .exceptions import CatalogFetchError
from .model import (
    DEVICE_MODES,
    SEPARATOR,
    THIRD_PARTY_BLOCKED,
    THIRD_PARTY_INCLUDED,
    Subject,
    TriggerMessage,
)

# Sections of the external content document that hold auditable pages.
CATALOG_SECTIONS = ("help", "fmcTariffs", "mobileTariffs", "mobilePhones", "fixedTariffs")

FAN_OUT_VARIANTS = (THIRD_PARTY_INCLUDED, THIRD_PARTY_BLOCKED)


def decode_message(payload: str) -> TriggerMessage:
    """
    Decodes a transport payload into a TriggerMessage.

    The payload is base64 of UTF-8 text shaped ``subjectId[_variant[_device]]``.
    Fields past the third are ignored and empty fields become None.

    Raises:
        ValueError: If the payload is not valid base64 or not UTF-8.
    """
    try:
        text = base64.b64decode(payload, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError(f"Trigger payload is not base64-encoded UTF-8: {e}") from e

    parts = text.split(SEPARATOR)
    variant = parts[1] if len(parts) > 1 and parts[1] else None
    device = parts[2] if len(parts) > 2 and parts[2] else None
    return TriggerMessage(raw=text, subject_id=parts[0], variant_flag=variant, device_mode=device)


def encode_message(text: str) -> str:
    """Encodes message text the way `decode_message` expects to receive it."""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def build_fan_out_messages(subject_id: str) -> List[str]:
    """
    Returns the four trigger messages for one subject, in publish order:
    third parties included then blocked, each for mobile then desktop.
    """
    return [
        SEPARATOR.join((subject_id, variant, device))
        for variant in FAN_OUT_VARIANTS
        for device in DEVICE_MODES
    ]


def parse_block_list(raw: Optional[str]) -> List[str]:
    """Splits a comma-separated domain list, dropping blanks."""
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def resolve_lighthouse_flags(
    base_flags: Mapping[str, Any], message: TriggerMessage, third_party_block_list: List[str]
) -> Dict[str, Any]:
    """
    Derives the Lighthouse flags for one run from the configured base flags.

    The configured flags are never mutated. A ``thirdPartyBlocked`` variant
    replaces ``blockedUrlPatterns`` with the given block list, and a device
    mode overrides ``emulatedFormFactor``.
    """
    flags = copy.deepcopy(dict(base_flags))
    if message.blocks_third_party:
        flags["blockedUrlPatterns"] = list(third_party_block_list)
    if message.device_mode:
        flags["emulatedFormFactor"] = message.device_mode
    return flags


def find_subject(catalog: Iterable[Subject], subject_id: str) -> Optional[Subject]:
    for subject in catalog:
        if subject["id"] == subject_id:
            return subject
    return None


def flatten_catalog(document: Mapping[str, Any]) -> List[Subject]:
    """
    Flattens an external content document into a list of subjects.

    The document holds ``fields.json.<section>`` objects for each name in
    CATALOG_SECTIONS. Each section contributes itself, every entry of its
    ``list``, and every entry of those entries' own ``list``.

    Raises:
        CatalogFetchError: If an expected section or attribute is missing.
    """
    try:
        sections = document["fields"]["json"]
        subjects: List[Subject] = []
        for name in CATALOG_SECTIONS:
            section = sections[name]
            subjects.append({"id": section["name"], "url": section["url"]})
            for entry in section["list"]:
                subjects.append({"id": entry["name"], "url": entry["url"]})
                for sub_entry in entry.get("list") or []:
                    subjects.append({"id": sub_entry["name"], "url": sub_entry["url"]})
    except (KeyError, TypeError) as e:
        raise CatalogFetchError(f"External catalog is missing expected field: {e}") from e
    return subjects


def fetch_external_catalog(
    session: requests.Session, url: str, auth_header: Optional[str] = None, timeout: float = 30.0
) -> List[Subject]:
    """
    Fetches the external subject catalog and flattens it.

    Args:
        session: The requests session to use.
        url: The catalog document URL.
        auth_header: Optional static value sent as the Authorization header.
        timeout: Socket timeout in seconds for the request.

    Returns:
        The flattened list of subjects.

    Raises:
        CatalogFetchError: On a non-2xx response or an unparsable body.
    """
    headers = {"Authorization": auth_header} if auth_header else {}
    try:
        response = session.get(url, headers=headers, timeout=timeout)
        response.raise_for_status()
        document = response.json()
    except (requests.RequestException, ValueError) as e:
        raise CatalogFetchError(f"Could not fetch external catalog from {url}: {e}") from e
    return flatten_catalog(document)
