import json

import pytest
import responses
from responses import matchers

from watchvuln.models import SeverityLevel, VulnInfo
from watchvuln.oscs import (
    DETAIL_URL,
    LIST_URL,
    OSCSCrawler,
    build_list_body,
    build_solution,
    list_item_tags,
    page_count_from_total,
    parse_detail,
)

# 2023-06-15 10:00 UTC
PUBLISH_MS = 1686823200000


def _detail(vuln_no, level="High", code=200, success=True):
    return {
        "data": [
            {
                "vuln_no": vuln_no,
                "vuln_title": "Demo 远程代码执行漏洞",
                "description": "demo description",
                "level": level,
                "cve_id": "CVE-2023-12345",
                "publish_time": PUBLISH_MS,
                "references": [
                    {"name": "a", "url": "https://example.com/a"},
                    {"name": "b", "url": "https://example.com/b"},
                ],
                "soulution_data": ["升级到最新版本", "关闭相关功能"],
            }
        ],
        "success": success,
        "code": code,
        "info": "ok" if code == 200 else "server error",
    }


LIST_BODY = {
    "data": {
        "total": 5,
        "data": [
            {
                "mps": "MPS-2023-0001",
                "url": "https://www.oscs1024.com/hd/MPS-2023-0001",
                "is_push": 1,
                "intelligence_type": 2,
            },
            {
                "mps": "MPS-2023-0002",
                "url": "https://www.oscs1024.com/hd/MPS-2023-0002",
                "is_push": 0,
                "intelligence_type": 1,
            },
        ],
    },
    "success": True,
    "code": 200,
    "info": "ok",
}


@pytest.mark.parametrize(
    "total, expected",
    [(5, 1), (10, 1), (20, 2), (25, 3), (30, 3), (31, 4), (100, 10)],
)
def test_page_count_from_total(total, expected):
    assert page_count_from_total(total) == expected


@pytest.mark.parametrize("total", [0, -3])
def test_page_count_from_total_rejects_non_positive(total):
    with pytest.raises(ValueError):
        page_count_from_total(total)


def test_build_list_body():
    assert build_list_body(2, 10) == b'{"page":2,"per_page":10}'
    assert json.loads(build_list_body(1, 5)) == {"page": 1, "per_page": 5}


def test_build_solution():
    assert build_solution(["a", "b"]) == "1. a\n2. b\n"
    assert build_solution([]) == ""
    assert build_solution(None) == ""


def test_list_item_tags():
    assert list_item_tags({"is_push": 1, "intelligence_type": 3}) == ["发布预警", "投毒情报"]
    assert list_item_tags({"is_push": 0, "intelligence_type": 2}) == ["墨菲安全独家"]
    assert list_item_tags({"is_push": 0, "intelligence_type": 9}) == ["公开漏洞"]


def test_parse_detail():
    info = parse_detail(_detail("MPS-2023-0001"))
    assert info.unique_key == "MPS-2023-0001"
    assert info.title == "Demo 远程代码执行漏洞"
    assert info.severity == SeverityLevel.HIGH
    assert info.cve == "CVE-2023-12345"
    assert info.disclosure == "2023-06-15"
    assert info.references == ["https://example.com/a", "https://example.com/b"]
    assert info.solutions == "1. 升级到最新版本\n2. 关闭相关功能\n"
    assert info.from_ == "https://www.oscs1024.com/hd/MPS-2023-0001"
    assert info.tags == []


@pytest.mark.parametrize(
    "level, expected",
    [
        ("Critical", SeverityLevel.CRITICAL),
        ("Medium", SeverityLevel.MEDIUM),
        ("Low", SeverityLevel.LOW),
        ("Unknown", SeverityLevel.LOW),
    ],
)
def test_parse_detail_levels(level, expected):
    assert parse_detail(_detail("X", level=level)).severity == expected


def test_parse_detail_error_response():
    with pytest.raises(ValueError, match="server error"):
        parse_detail(_detail("X", code=500))
    with pytest.raises(ValueError):
        parse_detail({"data": [], "success": True, "code": 200, "info": ""})


def test_is_valuable():
    crawler = OSCSCrawler()
    assert crawler.is_valuable(VulnInfo(severity=SeverityLevel.HIGH, tags=["发布预警"]))
    assert crawler.is_valuable(VulnInfo(severity=SeverityLevel.CRITICAL, tags=["x", "发布预警"]))
    assert not crawler.is_valuable(VulnInfo(severity=SeverityLevel.HIGH, tags=["公开漏洞"]))
    assert not crawler.is_valuable(VulnInfo(severity=SeverityLevel.MEDIUM, tags=["发布预警"]))


def test_provider_info():
    info = OSCSCrawler().provider_info()
    assert info.name == "oscs"
    assert info.link == "https://www.oscs1024.com/cm"


def test_get_update():
    crawler = OSCSCrawler()
    crawler.session.retry_interval = 0
    with responses.RequestsMock() as rsps:
        rsps.post(
            LIST_URL,
            json=LIST_BODY,
            match=[matchers.json_params_matcher({"page": 1, "per_page": 10})],
        )
        rsps.post(
            DETAIL_URL,
            json=_detail("MPS-2023-0001"),
            match=[matchers.json_params_matcher({"vuln_no": "MPS-2023-0001"})],
        )
        rsps.post(
            DETAIL_URL,
            json=_detail("MPS-2023-0002", code=500),
            match=[matchers.json_params_matcher({"vuln_no": "MPS-2023-0002"})],
        )
        vulns = crawler.get_update(3)

    assert len(vulns) == 1
    vuln = vulns[0]
    assert vuln.unique_key == "MPS-2023-0001"
    assert vuln.tags == ["发布预警", "墨菲安全独家"]
    assert vuln.creator is crawler
    assert crawler.is_valuable(vuln)


def test_get_update_fails_without_total():
    crawler = OSCSCrawler()
    crawler.session.retry_interval = 0
    body = {"data": {"total": 0, "data": []}, "success": True, "code": 200, "info": "ok"}
    with responses.RequestsMock() as rsps:
        rsps.post(LIST_URL, json=body)
        with pytest.raises(ValueError, match="total count"):
            crawler.get_update(1)
        assert len(rsps.calls) == crawler.session.retry_count + 1