"""Core data types shared by the vulnerability sources and the pushers."""

from __future__ import annotations

import enum
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from http.cookiejar import DefaultCookiePolicy
from typing import Any, Callable, Iterable, Optional

import requests

log = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/112.0.0.0 Safari/537.36 Edg/112.0.1722.58"
)

API_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8,en-GB;q=0.7,en-US;q=0.6",
    "Content-Type": "application/json",
    "Sec-Fetch-Dest": "empty",
    "Sec-Fetch-Mode": "cors",
    "Sec-Fetch-Site": "same-origin",
    "sec-ch-ua": '"Microsoft Edge";v="111", "Not(A:Brand";v="8", "Chromium";v="111"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"Windows"',
}

REASON_NEW_CREATED = "漏洞创建"
REASON_TAG_UPDATED = "标签更新"
REASON_SEVERITY_UPDATED = "等级更新"


class SeverityLevel(str, enum.Enum):
    """Severity of a vulnerability, valued by its display text."""

    LOW = "低危"
    MEDIUM = "中危"
    HIGH = "高危"
    CRITICAL = "严重"

    def __str__(self) -> str:
        return self.value


def _severity(value: Any) -> SeverityLevel | str:
    if isinstance(value, SeverityLevel):
        return value
    try:
        return SeverityLevel(value)
    except ValueError:
        return "" if value is None else str(value)


@dataclass
class VulnInfo:
    """A single vulnerability as reported by a source."""

    unique_key: str = ""
    title: str = ""
    description: str = ""
    severity: SeverityLevel | str = SeverityLevel.LOW
    cve: str = ""
    disclosure: str = ""
    solutions: str = ""
    github_search: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    from_: str = ""
    reason: list[str] = field(default_factory=list)
    creator: Optional["Grabber"] = field(default=None, repr=False, compare=False)

    def __str__(self) -> str:
        return f"{self.title} ({self.from_})"

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form of this record; the creator is left out."""
        return {
            "unique_key": self.unique_key,
            "title": self.title,
            "description": self.description,
            "severity": str(self.severity),
            "cve": self.cve,
            "disclosure": self.disclosure,
            "solutions": self.solutions,
            "github_search": list(self.github_search),
            "references": list(self.references),
            "tags": list(self.tags),
            "from": self.from_,
            "reason": list(self.reason),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VulnInfo":
        """Build a record from its JSON form; missing fields take defaults."""
        return cls(
            unique_key=data.get("unique_key") or "",
            title=data.get("title") or "",
            description=data.get("description") or "",
            severity=_severity(data.get("severity", SeverityLevel.LOW)),
            cve=data.get("cve") or "",
            disclosure=data.get("disclosure") or "",
            solutions=data.get("solutions") or "",
            github_search=list(data.get("github_search") or []),
            references=list(data.get("references") or []),
            tags=list(data.get("tags") or []),
            from_=data.get("from") or "",
            reason=list(data.get("reason") or []),
        )


@dataclass
class Provider:
    """Describes a vulnerability source."""

    name: str
    display_name: str
    link: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "display_name": self.display_name, "link": self.link}


class Grabber(ABC):
    """A source that can be polled for recent vulnerabilities."""

    @abstractmethod
    def provider_info(self) -> Provider:
        """Describe the source."""

    @abstractmethod
    def get_update(self, page_limit: int) -> list[VulnInfo]:
        """Fetch recent vulnerabilities, reading at most ``page_limit`` pages."""

    @abstractmethod
    def is_valuable(self, info: VulnInfo) -> bool:
        """Tell whether a vulnerability is worth pushing."""


RetryCondition = Callable[[Optional[requests.Response], Optional[BaseException]], bool]


def _retry_on_error(response: Optional[requests.Response], error: Optional[BaseException]) -> bool:
    return error is not None


class _RetrySession(requests.Session):
    """Session with a default timeout and retries driven by conditions."""

    def __init__(self, timeout: float = 10.0, retry_count: int = 3, retry_interval: float = 5.0):
        super().__init__()
        self.timeout = timeout
        self.retry_count = retry_count
        self.retry_interval = retry_interval
        self.retry_conditions: list[RetryCondition] = [_retry_on_error]

    def add_retry_condition(self, condition: RetryCondition) -> "_RetrySession":
        self.retry_conditions.append(condition)
        return self

    def _should_retry(self, response, error) -> bool:
        return any(condition(response, error) for condition in self.retry_conditions)

    def request(self, method, url, *args, **kwargs):
        kwargs.setdefault("timeout", self.timeout)
        attempt = 0
        while True:
            response: Optional[requests.Response] = None
            error: Optional[requests.RequestException] = None
            try:
                response = super().request(method, url, *args, **kwargs)
            except requests.RequestException as exc:
                error = exc
            if attempt < self.retry_count and self._should_retry(response, error):
                attempt += 1
                if error is not None:
                    log.warning("retrying as %s", error)
                time.sleep(self.retry_interval)
                continue
            if error is not None:
                raise error
            return response


def new_http_session() -> _RetrySession:
    """Create the shared HTTP session: browser UA, 10s timeout, 3 retries, no cookies."""
    session = _RetrySession()
    session.headers["User-Agent"] = USER_AGENT
    session.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))
    return session


def wrap_api_session(session: requests.Session) -> requests.Session:
    """Add the headers used when talking to JSON APIs."""
    session.headers.update(API_HEADERS)
    return session


def merge_unique_string(s1: Optional[Iterable[str]], s2: Optional[Iterable[str]]) -> list[str]:
    """Merge two string lists, dropping duplicates and keeping first-seen order."""
    merged = dict.fromkeys(s1 or ())
    merged.update(dict.fromkeys(s2 or ()))
    return list(merged)