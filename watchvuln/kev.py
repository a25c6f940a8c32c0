"""CISA Known Exploited Vulnerabilities catalog."""

from __future__ import annotations

import logging
from typing import Any

from watchvuln.models import Grabber, Provider, SeverityLevel, VulnInfo, new_http_session

log = logging.getLogger(__name__)

KEV_URL = "https://www.cisa.gov/sites/default/files/feeds/known_exploited_vulnerabilities.json"
KEV_CATALOG_URL = "https://www.cisa.gov/known-exploited-vulnerabilities-catalog"
# The feed always returns everything, so pages are emulated with this size.
KEV_PAGE_SIZE = 10


def select_vulns(data: dict[str, Any], page_limit: int) -> list[VulnInfo]:
    """Pick the newest ``page_limit`` pages of entries from a decoded catalog."""
    vulns = list(data.get("vulnerabilities") or [])
    item_limit = max(0, min(page_limit * KEV_PAGE_SIZE, len(vulns)))
    vulns.sort(key=lambda v: v.get("dateAdded") or "", reverse=True)
    results = []
    for vuln in vulns[:item_limit]:
        cve_id = vuln.get("cveID") or ""
        notes = vuln.get("notes") or ""
        results.append(
            VulnInfo(
                unique_key=cve_id + "_KEV",
                title=vuln.get("vulnerabilityName") or "",
                description=vuln.get("shortDescription") or "",
                # Everything in the catalog is exploited in the wild.
                severity=SeverityLevel.CRITICAL,
                cve=cve_id,
                solutions=vuln.get("requiredAction") or "",
                disclosure=vuln.get("dateAdded") or "",
                from_=KEV_CATALOG_URL,
                references=[notes] if notes else [],
                tags=[vuln.get("vendorProject") or "", vuln.get("product") or "", "在野利用"],
            )
        )
    return results


def _retry_on_bad_payload(response, error) -> bool:
    if response is None:
        return False
    if response.status_code != 200 or not response.ok:
        log.warning("failed to get content, msg: %s, retrying", response.reason)
        return True
    try:
        response.json()
    except ValueError as exc:
        log.warning("unmarshal json error, %s", exc)
        return True
    return False


class KEVCrawler(Grabber):
    """Reads the KEV JSON feed."""

    def __init__(self) -> None:
        self.session = new_http_session()
        self.session.headers["Referer"] = "Referer: " + KEV_CATALOG_URL
        self.session.add_retry_condition(_retry_on_bad_payload)

    def provider_info(self) -> Provider:
        return Provider(
            name="KEV",
            display_name="Known Exploited Vulnerabilities Catalog",
            link=KEV_CATALOG_URL,
        )

    def get_update(self, page_limit: int) -> list[VulnInfo]:
        response = self.session.get(KEV_URL, timeout=30)
        response.raise_for_status()
        results = select_vulns(response.json(), page_limit)
        for info in results:
            info.creator = self
        return results

    def is_valuable(self, info: VulnInfo) -> bool:
        return info.severity in (SeverityLevel.HIGH, SeverityLevel.CRITICAL)