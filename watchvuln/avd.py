"""Aliyun AVD high-risk vulnerability list."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from urllib.parse import parse_qs, urljoin, urlsplit

import requests
from bs4 import BeautifulSoup, NavigableString, Tag

from watchvuln.models import Grabber, Provider, SeverityLevel, VulnInfo, new_http_session

log = logging.getLogger(__name__)

LIST_URL = "https://avd.aliyun.com/high-risk/list"
BASE_URL = "https://avd.aliyun.com/"
MAIN_CONTENT_CLASS = "py-4 pl-4 pr-4 px-2 bg-white rounded shadow-sm"

CVE_ID_RE = re.compile(r"^CVE-\d+-\d+$")
PAGE_RE = re.compile(r"第 \d+ 页 / (\d+) 页 ")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_LEVELS = {
    "低危": SeverityLevel.LOW,
    "中危": SeverityLevel.MEDIUM,
    "高危": SeverityLevel.HIGH,
    "严重": SeverityLevel.CRITICAL,
}


def _decode(response: requests.Response) -> str:
    return response.content.decode("utf-8", errors="replace")


def _with_exact_class(soup: BeautifulSoup, name: str, value: str) -> list[Tag]:
    return soup.find_all(lambda t: t.name == name and " ".join(t.get("class") or ()) == value)


def _text(tags) -> str:
    return "".join(t.get_text() for t in tags)


def _is_request_uri(href: str) -> bool:
    return href.startswith("/") or bool(urlsplit(href).scheme)


def _valid_date(value: str) -> bool:
    if not _DATE_RE.match(value):
        return False
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def parse_page_count(text: str) -> int:
    """Read the total number of pages from the list page text."""
    match = PAGE_RE.search(text)
    if match is None:
        raise ValueError("failed to match page count")
    return int(match.group(1))


def parse_list_links(html: str) -> list[str]:
    """Return the absolute detail links of a list page, in page order."""
    soup = BeautifulSoup(html, "html.parser")
    rows = soup.select("tbody > tr")
    if not rows:
        raise ValueError("found zero vulns in list page")
    hrefs = []
    for row in rows:
        anchors = row.select("td > a")
        if len(anchors) != 1:
            raise ValueError("can't find a tag")
        href = anchors[0].get("href")
        if href is None:
            raise ValueError("can't get all href")
        hrefs.append(href)

    links = []
    for href in hrefs:
        if not _is_request_uri(href):
            log.error("invalid link %r", href)
            break
        links.append(urljoin(BASE_URL, href))
    return links


def _solution_text(node: Tag) -> str:
    lines = [str(child).strip() for child in node.children if type(child) is NavigableString]
    return "".join(line + "\n" for line in lines if line)


def parse_detail(html: str, vuln_link: str) -> VulnInfo:
    """Parse a vulnerability detail page."""
    soup = BeautifulSoup(html, "html.parser")
    avd = (parse_qs(urlsplit(vuln_link).query).get("id") or [""])[0].strip()

    cve_id = ""
    disclosure = ""
    tags: list[str] = []
    for metric in _with_exact_class(soup, "div", "metric"):
        label = _text(metric.select(".metric-label")).strip()
        value = _text(metric.select(".metric-value")).strip()
        if label.startswith("CVE"):
            cve_id = value
        elif label.startswith("利用情况"):
            if value != "暂无":
                tags.append(value.replace(" ", ""))
        elif label.endswith("披露时间"):
            disclosure = value

    if not CVE_ID_RE.match(cve_id):
        log.debug("cve id not found in %s", vuln_link)
        cve_id = ""
    if not _valid_date(disclosure):
        disclosure = ""
    if not cve_id and not disclosure:
        raise ValueError("invalid vuln data")

    headers = _with_exact_class(soup, "h5", "header__title")
    level = "".join(_text(h.select(".badge")) for h in headers).strip()
    title = "".join(_text(h.select(".header__title__text")) for h in headers).strip()

    children = [
        child
        for container in _with_exact_class(soup, "div", MAIN_CONTENT_CLASS)
        for child in container.children
        if isinstance(child, Tag)
    ]
    description = ""
    fix_steps = ""
    i = 0
    while i < len(children):
        sentinel = children[i].get_text().strip()
        has_next = i + 1 < len(children)
        if sentinel == "漏洞描述" and has_next:
            inner = children[i + 1].find("div")
            description = inner.get_text().strip() if inner is not None else ""
            i += 2
        elif sentinel == "解决建议" and has_next:
            fix_steps += _solution_text(children[i + 1])
            fix_steps = fix_steps.strip().replace("、", ". ")
            i += 2
        else:
            i += 1

    refs = []
    for child in children:
        for anchor in child.select("div.reference tbody > tr a"):
            href = anchor.get("href")
            if href is None:
                continue
            href = href.strip()
            if href.startswith("http"):
                refs.append(href)

    return VulnInfo(
        unique_key=avd,
        title=title,
        description=description,
        severity=_LEVELS.get(level, SeverityLevel.LOW),
        cve=cve_id,
        disclosure=disclosure,
        references=refs,
        solutions=fix_steps,
        from_=vuln_link,
        tags=tags,
    )


def _retry_on_bad_status(response, error) -> bool:
    return response is not None and response.status_code != 200


class AVDCrawler(Grabber):
    """Crawls the Aliyun AVD high-risk list and its detail pages."""

    def __init__(self) -> None:
        self.session = new_http_session()
        self.session.add_retry_condition(_retry_on_bad_status)

    def provider_info(self) -> Provider:
        return Provider(name="aliyun-avd", display_name="阿里云漏洞库", link=LIST_URL)

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
        return info.severity in (SeverityLevel.HIGH, SeverityLevel.CRITICAL)

    def _get_page_count(self) -> int:
        return parse_page_count(_decode(self.session.get(LIST_URL)))

    def _parse_page(self, page: int) -> list[VulnInfo]:
        response = self.session.get(f"{LIST_URL}?page={page}")
        body = _decode(response)
        try:
            links = parse_list_links(body)
        except ValueError:
            log.error("invalid response is \n%s", body)
            raise
        results = []
        for link in links:
            try:
                info = self._parse_single(link)
            except (requests.RequestException, ValueError) as exc:
                log.error("%s %s", exc, link)
                break
            results.append(info)
        return results

    def _parse_single(self, vuln_link: str) -> VulnInfo:
        log.debug("parsing vuln %s", vuln_link)
        info = parse_detail(_decode(self.session.get(vuln_link)), vuln_link)
        info.creator = self
        return info