import base64
from unittest.mock import Mock

import pytest
import requests

from lighthouse_lambda import core
from lighthouse_lambda.exceptions import CatalogFetchError
from lighthouse_lambda.model import TriggerMessage


def _b64(text):
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


class TestDecodeMessage:
    def test_full_message(self):
        message = core.decode_message(_b64("googlesearch_thirdPartyBlocked_mobile"))
        assert message == TriggerMessage(
            raw="googlesearch_thirdPartyBlocked_mobile",
            subject_id="googlesearch",
            variant_flag="thirdPartyBlocked",
            device_mode="mobile",
        )
        assert message.blocks_third_party

    def test_subject_only(self):
        message = core.decode_message(_b64("ebay"))
        assert message.subject_id == "ebay"
        assert message.variant_flag is None
        assert message.device_mode is None
        assert not message.is_broadcast

    def test_broadcast(self):
        assert core.decode_message(_b64("all")).is_broadcast

    def test_empty_device_mode_is_none(self):
        message = core.decode_message(_b64("ebay_thirdPartyIncluded_"))
        assert message.device_mode is None
        assert not message.blocks_third_party

    def test_invalid_base64(self):
        with pytest.raises(ValueError):
            core.decode_message("not base64!")

    def test_encode_matches_decode(self):
        assert core.decode_message(core.encode_message("ebay_thirdPartyIncluded_desktop")).raw == (
            "ebay_thirdPartyIncluded_desktop"
        )


def test_build_fan_out_messages():
    assert core.build_fan_out_messages("googlesearch") == [
        "googlesearch_thirdPartyIncluded_mobile",
        "googlesearch_thirdPartyIncluded_desktop",
        "googlesearch_thirdPartyBlocked_mobile",
        "googlesearch_thirdPartyBlocked_desktop",
    ]


def test_parse_block_list():
    assert core.parse_block_list(" a.com, ,b.com,") == ["a.com", "b.com"]
    assert core.parse_block_list(None) == []


class TestResolveLighthouseFlags:
    base = {"output": ["html"], "emulatedFormFactor": "desktop", "blockedUrlPatterns": ["x.com"]}

    def test_blocked_variant_replaces_patterns(self):
        message = TriggerMessage(raw="a_thirdPartyBlocked", subject_id="a", variant_flag="thirdPartyBlocked")
        flags = core.resolve_lighthouse_flags(self.base, message, ["ads.com", "track.com"])
        assert flags["blockedUrlPatterns"] == ["ads.com", "track.com"]
        assert flags["emulatedFormFactor"] == "desktop"

    def test_device_mode_overrides_form_factor(self):
        message = TriggerMessage(raw="a_thirdPartyIncluded_mobile", subject_id="a",
                                 variant_flag="thirdPartyIncluded", device_mode="mobile")
        flags = core.resolve_lighthouse_flags(self.base, message, ["ads.com"])
        assert flags["emulatedFormFactor"] == "mobile"
        assert flags["blockedUrlPatterns"] == ["x.com"]

    def test_base_flags_untouched(self):
        message = TriggerMessage(raw="a_thirdPartyBlocked_mobile", subject_id="a",
                                 variant_flag="thirdPartyBlocked", device_mode="mobile")
        core.resolve_lighthouse_flags(self.base, message, ["ads.com"])
        assert self.base["blockedUrlPatterns"] == ["x.com"]
        assert self.base["emulatedFormFactor"] == "desktop"


def _catalog_document():
    def section(name, entries):
        return {"name": name, "url": f"https://example.com/{name}", "list": entries}

    sections = {name: section(name, []) for name in core.CATALOG_SECTIONS}
    sections["help"]["list"] = [
        {"name": "faq", "url": "https://example.com/faq",
         "list": [{"name": "faq-billing", "url": "https://example.com/faq/billing"}]},
        {"name": "contact", "url": "https://example.com/contact"},
    ]
    return {"fields": {"json": sections}}


class TestFlattenCatalog:
    def test_flattens_sections_entries_and_sub_entries(self):
        subjects = core.flatten_catalog(_catalog_document())
        ids = [s["id"] for s in subjects]
        assert ids[:4] == ["help", "faq", "faq-billing", "contact"]
        assert ids[4:] == ["fmcTariffs", "mobileTariffs", "mobilePhones", "fixedTariffs"]
        assert subjects[2] == {"id": "faq-billing", "url": "https://example.com/faq/billing"}

    def test_missing_section(self):
        document = _catalog_document()
        del document["fields"]["json"]["mobilePhones"]
        with pytest.raises(CatalogFetchError):
            core.flatten_catalog(document)


class TestFetchExternalCatalog:
    def test_sends_auth_header(self):
        session = Mock()
        session.get.return_value.json.return_value = _catalog_document()
        subjects = core.fetch_external_catalog(session, "https://cms.example.com/doc", "Bearer token")
        session.get.assert_called_once_with(
            "https://cms.example.com/doc", headers={"Authorization": "Bearer token"}, timeout=30.0
        )
        assert len(subjects) == 8

    def test_no_auth_header(self):
        session = Mock()
        session.get.return_value.json.return_value = _catalog_document()
        core.fetch_external_catalog(session, "https://cms.example.com/doc")
        assert session.get.call_args.kwargs["headers"] == {}

    def test_http_error(self):
        session = Mock()
        session.get.return_value.raise_for_status.side_effect = requests.HTTPError("503")
        with pytest.raises(CatalogFetchError):
            core.fetch_external_catalog(session, "https://cms.example.com/doc")


def test_find_subject():
    catalog = [{"id": "a", "url": "https://a"}, {"id": "b", "url": "https://b"}]
    assert core.find_subject(catalog, "b") == {"id": "b", "url": "https://b"}
    assert core.find_subject(catalog, "c") is None
