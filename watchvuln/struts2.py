"""Apache Struts2 security bulletins."""

from __future__ import annotations

import logging
import re

import requests
from bs4 import BeautifulSoup

from watchvuln.models import Grabber, Provider, SeverityLevel, VulnInfo, new_http_session

log = logging.getLogger(__name__)

STRUTS2_URL = "https://cwiki.apache.org/confluence/display/WW/Security+Bulletins"
SITE = "https://cwiki.apache.org"
S2_ID_RE = re.compile(r"S2-\d{3}")


def severity_from_string(text: str) -> SeverityLevel:
    """Map an Apache severity rating onto a severity level; unknown means low."""
    return {
        "critical": SeverityLevel.CRITICAL,
        "important": SeverityLevel.HIGH,
        "moderate": SeverityLevel.MEDIUM,
        "low": SeverityLevel.LOW,
    }.get(text.strip().lower(), SeverityLevel.LOW)


def _select_text(soup: BeautifulSoup, selector: str) -> str:
    return "".join(tag.get_text() for tag in soup.select(selector))


def parse_bulletin_index(html: str, vuln_limit: int) -> list[tuple[str, str]]:
    """Return ``(title, link)`` for the last ``vuln_limit`` bulletins of the index."""
    soup = BeautifulSoup(html, "html.parser")
    items = soup.select("#main-content > ul > li")
    start = max(len(items) - vuln_limit, 0)
    entries = []
    for item in items[start:]:
        anchors = item.find_all("a")
        title = "".join(a.get_text() for a in anchors)
        link = (anchors[0].get("href") or "") if anchors else ""
        entries.append((title, SITE + link))
    return entries


def parse_bulletin(html: str, url: str) -> VulnInfo:
    """Parse a single bulletin page."""
    soup = BeautifulSoup(html, "html.parser")
    return VulnInfo(
        severity=severity_from_string(
            _select_text(soup, 'th:-soup-contains("Maximum security rating") + td')
        ),
        cve=_select_text(soup, 'th:-soup-contains("CVE Identifier") + td'),
        description=_select_text(soup, "h2[id$='-Problem'] + p"),
        solutions=_select_text(soup, "h2[id$='-Solution'] + p"),
        tags=[_select_text(soup, 'th:-soup-contains("Impact of vulnerability") + td')],
        from_=url,
    )


class Struts2Crawler(Grabber):
    """Reads the Struts2 security bulletin index and the newest bulletins."""

    def __init__(self) -> None:
        self.session = new_http_session()
        self.session.headers.update(
            {
                "Referer": "https://cwiki.apache.org/",
                "Origin": "https://cwiki.apache.org/",
                "Accept-Language": "en-US,en;q=0.9",
            }
        )

    def provider_info(self) -> Provider:
        return Provider(
            name="Struts2",
            display_name="Apache Struts2 Security Bulletins",
            link=STRUTS2_URL,
        )

    def get_update(self, vuln_limit: int) -> list[VulnInfo]:
        index = self.session.get(STRUTS2_URL, timeout=30)
        results = []
        for title, link in parse_bulletin_index(index.text, vuln_limit):
            try:
                response = self.session.get(link)
            except requests.RequestException as exc:
                log.error("%s", exc)
                continue
            vuln = parse_bulletin(response.text, link)
            vuln.title = title
            match = S2_ID_RE.search(title)
            if match is None:
                log.warning("can not find unique key from %s", title)
                continue
            vuln.unique_key = match.group(0)
            vuln.creator = self
            results.append(vuln)
        log.info("got %d vulns", len(results))
        return results

    def is_valuable(self, info: VulnInfo) -> bool:
        return info.severity in (SeverityLevel.HIGH, SeverityLevel.CRITICAL)