"""OSCS open source security intelligence feed."""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime
from typing import Any

import requests

from watchvuln.models import (
    Grabber,
    Provider,
    SeverityLevel,
    VulnInfo,
    new_http_session,
    wrap_api_session,
)

log = logging.getLogger(__name__)

OSCS_PAGE_SIZE = 10
LIST_URL = "https://www.oscs1024.com/oscs/v1/intelligence/list"
DETAIL_URL = "https://www.oscs1024.com/oscs/v1/vdb/info"
DETAIL_PAGE_URL = "https://www.oscs1024.com/hd/"

TAG_PUSHED = "发布预警"

_EVENT_TYPES = {
    1: "公开漏洞",
    2: "墨菲安全独家",
    3: "投毒情报",
}

_LEVELS = {
    "Critical": SeverityLevel.CRITICAL,
    "High": SeverityLevel.HIGH,
    "Medium": SeverityLevel.MEDIUM,
    "Low": SeverityLevel.LOW,
}


def page_count_from_total(total: int) -> int:
    """Turn the total number of entries reported by the list API into a page count."""
    if total <= 0:
        raise ValueError(f"failed to get total count, {total}")
    page_count = total // OSCS_PAGE_SIZE
    if page_count == 0:
        return 1
    if total % page_count != 0:
        page_count += 1
    return page_count


def build_list_body(page: int, size: int) -> bytes:
    """Build the JSON body of a list request."""
    return json.dumps({"page": page, "per_page": size}, separators=(",", ":"), sort_keys=True).encode()


def build_solution(solutions: list[str] | None) -> str:
    """Number the solution lines, one per line."""
    return "".join(f"{i}. {s}\n" for i, s in enumerate(solutions or [], 1))


def list_item_tags(item: dict[str, Any]) -> list[str]:
    """Tags derived from a list entry: the push flag and the intelligence type."""
    tags = []
    if item.get("is_push") == 1:
        tags.append(TAG_PUSHED)
    tags.append(_EVENT_TYPES.get(item.get("intelligence_type"), "公开漏洞"))
    return tags


def parse_detail(body: dict[str, Any]) -> VulnInfo:
    """Build a vulnerability from a decoded detail response."""
    entries = body.get("data") or []
    if body.get("code") != 200 or not body.get("success") or not entries:
        raise ValueError(f"response error {body.get('info', '')}")
    data = entries[0]
    vuln_no = data.get("vuln_no") or ""
    publish_ms = data.get("publish_time") or 0
    disclosure = datetime.fromtimestamp(publish_ms / 1000).strftime("%Y-%m-%d")
    refs = [ref.get("url") or "" for ref in data.get("references") or []]
    # The fix suggestions are generated from version ranges and carry little value.
    return VulnInfo(
        unique_key=vuln_no,
        title=data.get("vuln_title") or "",
        description=data.get("description") or "",
        severity=_LEVELS.get(data.get("level"), SeverityLevel.LOW),
        cve=data.get("cve_id") or "",
        disclosure=disclosure,
        references=refs,
        tags=[],
        solutions=build_solution(data.get("soulution_data")),
        from_=DETAIL_PAGE_URL + vuln_no,
    )


class OSCSCrawler(Grabber):
    """Reads the OSCS intelligence list and the details of each entry."""

    def __init__(self) -> None:
        self.session = wrap_api_session(new_http_session())
        self.session.headers["Referer"] = "https://www.oscs1024.com/cm"
        self.session.headers["Origin"] = "https://www.oscs1024.com"

    def provider_info(self) -> Provider:
        return Provider(
            name="oscs",
            display_name="OSCS开源安全情报预警",
            link="https://www.oscs1024.com/cm",
        )

    def get_update(self, page_limit: int) -> list[VulnInfo]:
        page_count = self._get_page_count()
        if page_count == 0:
            raise ValueError("invalid page count")
        page_count = min(page_count, page_limit)
        results: list[VulnInfo] = []
        for page in range(1, page_count + 1):
            page_result = self._parse_page(page)
            log.info("got %d vulns from page %d", len(page_result), page)
            results.extend(page_result)
        return results

    def is_valuable(self, info: VulnInfo) -> bool:
        # Only pushed warnings that are high or critical.
        if info.severity not in (SeverityLevel.CRITICAL, SeverityLevel.HIGH):
            return False
        return TAG_PUSHED in info.tags

    def _get_page_count(self) -> int:
        total = 0
        for attempt in range(self.session.retry_count + 1):
            if attempt:
                time.sleep(self.session.retry_interval)
            response = self.session.post(LIST_URL, data=build_list_body(1, OSCS_PAGE_SIZE))
            try:
                body = response.json()
            except ValueError as exc:
                log.warning("unmarshal json error, %s", exc)
                continue
            if not isinstance(body, dict):
                log.warning("unmarshal json error, unexpected body")
                continue
            total = (body.get("data") or {}).get("total") or 0
            if body.get("code") != 200 or not body.get("success"):
                log.warning("failed to get page count, msg: %s, retrying", body.get("info", ""))
                continue
            if total <= 0:
                log.warning("invalid total size %d, retrying", total)
                continue
            break
        return page_count_from_total(total)

    def _parse_page(self, page: int) -> list[VulnInfo]:
        response = self.session.post(LIST_URL, data=build_list_body(page, OSCS_PAGE_SIZE))
        body = response.json()
        items = (body.get("data") or {}).get("data") or []
        results = []
        for item in items:
            tags = list_item_tags(item)
            try:
                info = self._parse_single(item.get("mps") or "")
            except (requests.RequestException, ValueError) as exc:
                log.error("failed to parse %s, %s", item.get("url", ""), exc)
                continue
            info.tags = tags
            results.append(info)
        return results

    def _parse_single(self, mps: str) -> VulnInfo:
        response = self.session.post(DETAIL_URL, data=f'{{"vuln_no":"{mps}"}}'.encode())
        info = parse_detail(response.json())
        info.creator = self
        return info