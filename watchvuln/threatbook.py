"""ThreatBook vulnerability notices, read from an RSS mirror of its articles."""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Iterable, Union

import requests
from bs4 import BeautifulSoup

from watchvuln.models import Grabber, Provider, SeverityLevel, VulnInfo, new_http_session

log = logging.getLogger(__name__)

THREATBOOK_URL = "https://wechat2rss.xlab.app/feed/ac64c385ebcdb17fee8df733eb620a22b979928c.xml"

CVE_RE = re.compile(r"CVE-\d+-\d+")

_LEVELS = {
    "低危": SeverityLevel.LOW,
    "中危": SeverityLevel.MEDIUM,
    "高危": SeverityLevel.HIGH,
    "严重": SeverityLevel.CRITICAL,
}

_TAG_LABELS = ("公开程度", "漏洞类型", "利用条件", "交互要求", "威胁类型")


@dataclass
class FeedItem:
    """One article of the feed."""

    title: str
    link: str


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(element: ET.Element, name: str) -> str:
    for child in element:
        if _local(child.tag) == name:
            return (child.text or "").strip()
    return ""


def _item_link(element: ET.Element) -> str:
    for child in element:
        if _local(child.tag) == "link":
            text = (child.text or "").strip()
            if text:
                return text
            href = child.get("href")
            if href:
                return href.strip()
    return ""


def parse_feed(xml_text: Union[str, bytes]) -> list[FeedItem]:
    """Read the items of an RSS or Atom feed."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise ValueError(f"invalid feed: {exc}") from exc
    return [
        FeedItem(title=_child_text(element, "title"), link=_item_link(element))
        for element in root.iter()
        if _local(element.tag) in ("item", "entry")
    ]


def filter_vuln_items(items: Iterable[FeedItem]) -> list[FeedItem]:
    """Keep only the articles whose title marks them as vulnerability notices."""
    return [item for item in items if "漏洞通告" in item.title or "风险提示" in item.title]


def title_without_type(title: str) -> str:
    """Strip the notice-type prefix, e.g. ``漏洞通告 | X`` becomes ``X``."""
    title = title.lstrip("漏洞通告")
    title = title.lstrip("风险提示")
    title = title.strip()
    title = title.lstrip("|")
    return title.strip()


def _cell_after(soup: BeautifulSoup, label: str) -> str:
    return "".join(td.get_text() for td in soup.select(f'td:-soup-contains("{label}") + td'))


def parse_article(html: Union[str, bytes], item: FeedItem) -> VulnInfo:
    """Parse a notice article into a vulnerability."""
    soup = BeautifulSoup(html, "html.parser")
    description = "".join(
        s.get_text() for s in soup.select('section:-soup-contains("漏洞概况") + section')
    )
    level = _cell_after(soup, "危害评级")
    match = CVE_RE.search(description)
    return VulnInfo(
        title=title_without_type(item.title),
        description=description.strip(),
        unique_key=_cell_after(soup, "微步编号"),
        from_=item.link,
        severity=_LEVELS.get(level.strip(), SeverityLevel.LOW),
        cve=match.group(0) if match else "",
        tags=[_cell_after(soup, label) for label in _TAG_LABELS],
    )


class ThreatBookCrawler(Grabber):
    """Reads ThreatBook notices from the feed and parses each article."""

    def __init__(self) -> None:
        self.session = new_http_session()
        self.session.headers.update(
            {
                "Referer": "https://mp.weixin.qq.com/",
                "Origin": "https://mp.weixin.qq.com/",
                "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8,en-GB;q=0.7,en-US;q=0.6",
            }
        )

    def provider_info(self) -> Provider:
        return Provider(
            name="threatbook",
            display_name="微步在线研究响应中心-漏洞通告",
            link="https://x.threatbook.com/v5/vulIntelligence",
        )

    def get_update(self, page_limit: int) -> list[VulnInfo]:
        try:
            response = self.session.get(THREATBOOK_URL, timeout=60)
            response.raise_for_status()
            items = parse_feed(response.content)
        except (requests.RequestException, ValueError):
            log.error("error parsing %s", THREATBOOK_URL)
            raise
        results = []
        for item in filter_vuln_items(items):
            log.debug("parsing %s at %s", item.title, item.link)
            try:
                article = self.session.get(item.link, timeout=60)
            except requests.RequestException as exc:
                log.error("%s", exc)
                continue
            vuln = parse_article(article.content.decode("utf-8", errors="replace"), item)
            vuln.creator = self
            results.append(vuln)
        log.info("got %d vulns", len(results))
        return results

    def is_valuable(self, info: VulnInfo) -> bool:
        return info.severity in (SeverityLevel.HIGH, SeverityLevel.CRITICAL)