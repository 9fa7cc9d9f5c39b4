import json

import pytest

from lighthouse_lambda.exceptions import ReportFieldMissing
from lighthouse_lambda.normalizer import normalize_report

from .conftest import FIXTURES


def test_matches_golden_record(lhr):
    expected = json.loads((FIXTURES / "mock_parsed_lhr.json").read_text(encoding="utf-8"))
    result = normalize_report(lhr, "googlesearch")
    assert result == expected
    assert json.dumps(result) == json.dumps(expected)


def test_sections_are_single_element_lists(lhr):
    result = normalize_report(lhr, "googlesearch")
    for section in ("accessibility", "best_practices", "performance", "pwa", "seo"):
        assert isinstance(result[section], list)
        assert len(result[section]) == 1


def test_blocked_urls_copied(lhr):
    lhr["configSettings"]["blockedUrlPatterns"] = ["ads.example.com"]
    assert normalize_report(lhr, "googlesearch")["blocked_urls"] == ["ads.example.com"]


def test_numeric_value_alias(lhr):
    audit = lhr["audits"]["speed-index"]
    audit["numericValue"] = audit.pop("rawValue")
    result = normalize_report(lhr, "googlesearch")
    assert result["performance"][0]["speed_index"] == [{"raw_value": 2104, "score": 0.92}]


def test_missing_audit_fails_fast(lhr):
    del lhr["audits"]["hreflang"]
    with pytest.raises(ReportFieldMissing, match="hreflang"):
        normalize_report(lhr, "googlesearch")


def test_missing_metric_value_fails_fast(lhr):
    del lhr["audits"]["interactive"]["rawValue"]
    with pytest.raises(ReportFieldMissing):
        normalize_report(lhr, "googlesearch")


def test_missing_category_fails_fast(lhr):
    del lhr["categories"]["pwa"]
    with pytest.raises(ReportFieldMissing, match="pwa"):
        normalize_report(lhr, "googlesearch")
