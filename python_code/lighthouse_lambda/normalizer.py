"""
Projects a Lighthouse result onto the fixed ``reports`` table schema.

The mappings below name, for each category section, the output column and the
Lighthouse audit it is read from. Boolean columns are true only when the audit
scored a full 1. Performance metrics keep both the raw measurement and the
score. Nothing is defaulted: a report that lacks one of these audits cannot be
loaded into the table and raises ReportFieldMissing.
"""

from typing import Any, Dict, List, Mapping, Tuple

from .exceptions import ReportFieldMissing
from .model import MetricRecord, NormalizedRecord

ACCESSIBILITY_CHECKS: Tuple[Tuple[str, str], ...] = (
    ("bypass_repetitive_content", "bypass"),
    ("color_contrast", "color-contrast"),
    ("document_title_found", "document-title"),
    ("no_duplicate_id_attribute", "duplicate-id"),
    ("html_has_lang_attribute", "html-has-lang"),
    ("html_lang_is_valid", "html-lang-valid"),
    ("images_have_alt_attribute", "image-alt"),
    ("form_elements_have_labels", "label"),
    ("links_have_names", "link-name"),
    ("lists_are_well_formed", "list"),
    ("list_items_within_proper_parents", "listitem"),
    ("meta_viewport_allows_zoom", "meta-viewport"),
)

BEST_PRACTICES_CHECKS: Tuple[Tuple[str, str], ...] = (
    ("avoid_application_cache", "appcache-manifest"),
    ("uses_https", "is-on-https"),
    ("uses_http2", "uses-http2"),
    ("uses_passive_event_listeners", "uses-passive-event-listeners"),
    ("no_document_write", "no-document-write"),
    ("external_anchors_use_rel_noopener", "external-anchors-use-rel-noopener"),
    ("no_geolocation_on_start", "geolocation-on-start"),
    ("doctype_defined", "doctype"),
    ("no_vulnerable_libraries", "no-vulnerable-libraries"),
    ("notification_asked_on_start", "notification-on-start"),
    ("avoid_deprecated_apis", "deprecations"),
    ("allow_paste_to_password_field", "password-inputs-can-be-pasted-into"),
    ("errors_in_console", "errors-in-console"),
    ("images_have_correct_aspect_ratio", "image-aspect-ratio"),
)

PERFORMANCE_METRICS: Tuple[Tuple[str, str], ...] = (
    ("first_contentful_paint", "first-contentful-paint"),
    ("first_meaningful_paint", "first-meaningful-paint"),
    ("speed_index", "speed-index"),
    ("page_interactive", "interactive"),
    ("first_cpu_idle", "first-cpu-idle"),
)

PWA_CHECKS: Tuple[Tuple[str, str], ...] = (
    ("load_fast_enough", "load-fast-enough-for-pwa"),
    ("works_offline", "works-offline"),
    ("installable_manifest", "installable-manifest"),
    ("uses_https", "is-on-https"),
    ("redirects_http_to_https", "redirects-http"),
    ("has_meta_viewport", "viewport"),
    ("uses_service_worker", "service-worker"),
    ("works_without_javascript", "without-javascript"),
    ("splash_screen_found", "splash-screen"),
    ("themed_address_bar", "themed-omnibox"),
)

SEO_CHECKS: Tuple[Tuple[str, str], ...] = (
    ("has_meta_viewport", "viewport"),
    ("document_title_found", "document-title"),
    ("meta_description", "meta-description"),
    ("http_status_code", "http-status-code"),
    ("descriptive_link_text", "link-text"),
    ("is_crawlable", "is-crawlable"),
    ("robots_txt_valid", "robots-txt"),
    ("hreflang_valid", "hreflang"),
    ("font_size_ok", "font-size"),
    ("plugins_ok", "plugins"),
)


def _require(container: Mapping[str, Any], key: str, where: str) -> Any:
    try:
        return container[key]
    except (KeyError, TypeError):
        raise ReportFieldMissing(
            f"Report is missing '{key}' in {where}", context={"field": key, "path": where}
        ) from None


def _audit(lhr: Mapping[str, Any], audit_id: str) -> Mapping[str, Any]:
    audits = _require(lhr, "audits", "report")
    return _require(audits, audit_id, "audits")


def _passed(lhr: Mapping[str, Any], audit_id: str) -> bool:
    return _require(_audit(lhr, audit_id), "score", f"audits.{audit_id}") == 1


def _category_score(lhr: Mapping[str, Any], category_id: str) -> Any:
    categories = _require(lhr, "categories", "report")
    category = _require(categories, category_id, "categories")
    return _require(category, "score", f"categories.{category_id}")


def _metric(lhr: Mapping[str, Any], audit_id: str) -> List[MetricRecord]:
    audit = _audit(lhr, audit_id)
    # Lighthouse 5 renamed rawValue to numericValue.
    key = "rawValue" if "rawValue" in audit else "numericValue"
    return [
        {
            "raw_value": _require(audit, key, f"audits.{audit_id}"),
            "score": _require(audit, "score", f"audits.{audit_id}"),
        }
    ]


def _checks_section(
    lhr: Mapping[str, Any], category_id: str, checks: Tuple[Tuple[str, str], ...]
) -> List[Dict[str, Any]]:
    section: Dict[str, Any] = {"total_score": _category_score(lhr, category_id)}
    for column, audit_id in checks:
        section[column] = _passed(lhr, audit_id)
    return [section]


def normalize_report(lhr: Mapping[str, Any], subject_id: str) -> NormalizedRecord:
    """
    Parses a Lighthouse result into a record matching the ``reports`` schema.

    Args:
        lhr: The Lighthouse result object.
        subject_id: The catalog id of the audited subject.

    Returns:
        The normalized record, without a ``job_id``.

    Raises:
        ReportFieldMissing: If any category, audit or field is absent.
    """
    settings = _require(lhr, "configSettings", "report")

    performance: Dict[str, Any] = {"total_score": _category_score(lhr, "performance")}
    for column, audit_id in PERFORMANCE_METRICS:
        performance[column] = _metric(lhr, audit_id)

    return {
        "fetch_time": _require(lhr, "fetchTime", "report"),
        "site_url": _require(lhr, "finalUrl", "report"),
        "site_id": subject_id,
        "user_agent": _require(lhr, "userAgent", "report"),
        "emulated_as": settings.get("emulatedFormFactor"),
        "blocked_urls": settings.get("blockedUrlPatterns") or [],
        "accessibility": _checks_section(lhr, "accessibility", ACCESSIBILITY_CHECKS),
        "best_practices": _checks_section(lhr, "best-practices", BEST_PRACTICES_CHECKS),
        "performance": [performance],
        "pwa": _checks_section(lhr, "pwa", PWA_CHECKS),
        "seo": _checks_section(lhr, "seo", SEO_CHECKS),
    }
