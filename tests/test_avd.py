import re
from urllib.parse import parse_qs, urlsplit

import pytest
import responses

from watchvuln.avd import (
    AVDCrawler,
    parse_detail,
    parse_list_links,
    parse_page_count,
)
from watchvuln.models import SeverityLevel, VulnInfo

DETAIL_TEMPLATE = """
<html><body>
<h5 class="header__title"><span class="badge">{level}</span>
<span class="header__title__text"> {title} </span></h5>
<div class="metric"><div class="metric-label">CVE编号</div><div class="metric-value"> {cve} </div></div>
<div class="metric"><div class="metric-label">利用情况</div><div class="metric-value">POC 已公开</div></div>
<div class="metric"><div class="metric-label">披露时间</div><div class="metric-value">{date}</div></div>
<div class="py-4 pl-4 pr-4 px-2 bg-white rounded shadow-sm">
<h6>漏洞描述</h6>
<div><div> 该组件存在远程代码执行漏洞。 </div></div>
<h6>解决建议</h6>
<div>1、升级到最新版本<br/>2、限制访问</div>
<div class="reference"><table><tbody>
<tr><td><a href="https://example.com/ref1">ref</a></td></tr>
<tr><td><a href="/local/ref">local</a></td></tr>
</tbody></table></div>
</div>
</body></html>
"""


def detail_html(level="高危", title="Foo 远程代码执行漏洞", cve="CVE-2023-1234", date="2023-06-01"):
    return DETAIL_TEMPLATE.format(level=level, title=title, cve=cve, date=date)


def list_html(ids, pages=3):
    rows = "".join(
        f'<tr><td><a href="/detail?id={i}">{i}</a></td><td>desc</td></tr>' for i in ids
    )
    return f"<html><body><table><tbody>{rows}</tbody></table><div>第 1 页 / {pages} 页 </div></body></html>"


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


def test_parse_page_count():
    assert parse_page_count("abc 第 1 页 / 12 页 xyz") == 12


def test_parse_page_count_missing():
    with pytest.raises(ValueError):
        parse_page_count("no pagination here")


def test_parse_list_links_resolves_relative_hrefs():
    links = parse_list_links(list_html(["AVD-2023-0001", "AVD-2023-0002"]))
    assert links == [
        "https://avd.aliyun.com/detail?id=AVD-2023-0001",
        "https://avd.aliyun.com/detail?id=AVD-2023-0002",
    ]


def test_parse_list_links_zero_rows():
    with pytest.raises(ValueError):
        parse_list_links("<html><body><p>blocked</p></body></html>")


def test_parse_list_links_row_without_link():
    html = "<table><tbody><tr><td>no link</td></tr></tbody></table>"
    with pytest.raises(ValueError):
        parse_list_links(html)


def test_parse_list_links_stops_at_invalid_href():
    html = (
        "<table><tbody>"
        '<tr><td><a href="/detail?id=A">A</a></td></tr>'
        '<tr><td><a href="relative">B</a></td></tr>'
        '<tr><td><a href="/detail?id=C">C</a></td></tr>'
        "</tbody></table>"
    )
    assert parse_list_links(html) == ["https://avd.aliyun.com/detail?id=A"]


def test_parse_detail_fields():
    link = "https://avd.aliyun.com/detail?id=AVD-2023-0001"
    info = parse_detail(detail_html(), link)
    assert info.unique_key == "AVD-2023-0001"
    assert info.title == "Foo 远程代码执行漏洞"
    assert info.severity == SeverityLevel.HIGH
    assert info.cve == "CVE-2023-1234"
    assert info.disclosure == "2023-06-01"
    assert info.tags == ["POC已公开"]
    assert info.description == "该组件存在远程代码执行漏洞。"
    assert info.solutions == "1. 升级到最新版本\n2. 限制访问"
    assert info.references == ["https://example.com/ref1"]
    assert info.from_ == link


@pytest.mark.parametrize(
    "level,expected",
    [
        ("低危", SeverityLevel.LOW),
        ("中危", SeverityLevel.MEDIUM),
        ("高危", SeverityLevel.HIGH),
        ("严重", SeverityLevel.CRITICAL),
        ("未知", SeverityLevel.LOW),
    ],
)
def test_parse_detail_severity(level, expected):
    info = parse_detail(detail_html(level=level), "https://avd.aliyun.com/detail?id=X")
    assert info.severity == expected


def test_parse_detail_drops_bad_cve_and_date():
    info = parse_detail(detail_html(cve="N/A"), "https://avd.aliyun.com/detail?id=X")
    assert info.cve == ""
    assert info.disclosure == "2023-06-01"
    info = parse_detail(detail_html(date="2023/06/01"), "https://avd.aliyun.com/detail?id=X")
    assert info.disclosure == ""
    assert info.cve == "CVE-2023-1234"


def test_parse_detail_invalid_data():
    with pytest.raises(ValueError):
        parse_detail(detail_html(cve="N/A", date="unknown"), "https://avd.aliyun.com/detail?id=X")


def test_is_valuable():
    crawler = AVDCrawler()
    assert crawler.is_valuable(VulnInfo(severity=SeverityLevel.CRITICAL))
    assert crawler.is_valuable(VulnInfo(severity=SeverityLevel.HIGH))
    assert not crawler.is_valuable(VulnInfo(severity=SeverityLevel.MEDIUM))


def test_provider_info():
    assert AVDCrawler().provider_info().name == "aliyun-avd"


def _site_callback(ids, pages, requested):
    def callback(request):
        requested.append(request.url)
        parts = urlsplit(request.url)
        query = parse_qs(parts.query)
        if parts.path == "/high-risk/list":
            return 200, {}, list_html(ids, pages)
        vuln_id = query["id"][0]
        return 200, {}, detail_html(title=f"漏洞 {vuln_id}")

    return callback


def test_get_update(mocked):
    ids = [f"AVD-2023-{n:04d}" for n in range(30)]
    requested = []
    mocked.add_callback(
        responses.GET,
        re.compile(r"https://avd\.aliyun\.com/.*"),
        callback=_site_callback(ids, 3, requested),
    )
    crawler = AVDCrawler()
    crawler.session.retry_interval = 0
    vulns = crawler.get_update(1)
    assert len(vulns) == 30
    for v in vulns:
        assert v.unique_key
        assert v.description
        assert v.title
        assert v.disclosure
        assert v.from_
        assert v.creator is crawler
    assert [v.unique_key for v in vulns] == ids
    assert not any("page=2" in url for url in requested)


def test_get_update_stops_at_broken_detail(mocked):
    def callback(request):
        parts = urlsplit(request.url)
        if parts.path == "/high-risk/list":
            return 200, {}, list_html(["A", "B", "C"], 1)
        vuln_id = parse_qs(parts.query)["id"][0]
        if vuln_id == "B":
            return 200, {}, detail_html(cve="none", date="none")
        return 200, {}, detail_html()

    mocked.add_callback(responses.GET, re.compile(r"https://avd\.aliyun\.com/.*"), callback=callback)
    crawler = AVDCrawler()
    crawler.session.retry_interval = 0
    vulns = crawler.get_update(5)
    assert [v.unique_key for v in vulns] == ["A"]


def test_get_update_without_page_count(mocked):
    mocked.add(responses.GET, "https://avd.aliyun.com/high-risk/list", body="nothing", status=200)
    crawler = AVDCrawler()
    crawler.session.retry_interval = 0
    with pytest.raises(ValueError):
        crawler.get_update(1)