"""Rendering of push messages and the raw webhook message envelope."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from watchvuln.models import Provider, VulnInfo

MAX_DESCRIPTION_LENGTH = 500
MAX_REFERENCE_INDEX_LENGTH = 8

RAW_MESSAGE_TYPE_INITIAL = "watchvuln-initial"
RAW_MESSAGE_TYPE_TEXT = "watchvuln-text"
RAW_MESSAGE_TYPE_VULN_INFO = "watchvuln-vulninfo"

_MARKDOWN_ESCAPES = str.maketrans({c: "\\" + c for c in "_*[]()~`>#+-=|{}!"})


@dataclass
class InitialMessage:
    """Summary sent once the local database has been initialised."""

    version: str
    vuln_count: int
    interval: str
    provider: list[Provider] = field(default_factory=list)
    failed_provider: list[Provider] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "vuln_count": self.vuln_count,
            "interval": self.interval,
            "provider": [p.to_dict() for p in self.provider],
            "failed_provider": [p.to_dict() for p in self.failed_provider],
        }


@dataclass
class TextMessage:
    """A plain text notice."""

    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message}


@dataclass
class RawMessage:
    """A typed envelope around a message, as posted to webhooks."""

    content: Union[InitialMessage, TextMessage, VulnInfo]
    type: str

    def to_dict(self) -> dict[str, Any]:
        return {"content": self.content.to_dict(), "type": self.type}


def escape_markdown(text: str) -> str:
    """Escape markdown control characters so unclosed markup cannot break a push."""
    return text.translate(_MARKDOWN_ESCAPES)


def _numbered_links(links: list[str]) -> str:
    return "".join(f"{i}. [{ref}]({ref})\n" for i, ref in enumerate(links, 1))


def render_vuln_info(v: VulnInfo) -> str:
    """Render a vulnerability as the markdown body of a push."""
    description = v.description
    if len(description) > MAX_DESCRIPTION_LENGTH:
        description = description[:MAX_DESCRIPTION_LENGTH] + "..."
    description = escape_markdown(description)
    references = list(v.references or [])[:MAX_REFERENCE_INDEX_LENGTH]

    parts = [
        f"\n# {v.title}\n\n",
        "- CVE编号: " + (f"**{v.cve}**" if v.cve else "暂无") + "\n",
        f"- 危害定级: **{v.severity}**\n",
        "- 漏洞标签: " + "".join(f"**{tag}** " for tag in v.tags or []) + "\n",
        f"- 披露日期: **{v.disclosure}**\n",
        "- 推送原因: " + "".join(f"{r} " for r in v.reason or []) + "\n",
        f"- 信息来源: [{v.from_}]({v.from_})\n\n",
    ]
    if description:
        parts.append(f"### **漏洞描述**\n{description}")
    parts.append("\n\n")
    if v.solutions:
        parts.append(f"###  **修复方案**\n{v.solutions}\n\n")
    if references:
        parts.append("### **参考链接**\n" + _numbered_links(references) + "\n")
    if v.cve:
        parts.append("### **开源检索**\n")
        if v.github_search:
            parts.append(_numbered_links(list(v.github_search)) + "\n")
        else:
            parts.append("暂未找到\n")
    return "".join(parts)


def render_initial_msg(m: InitialMessage) -> str:
    """Render the start-up summary as markdown."""
    parts = [
        f"\n数据初始化完成，当前版本 {m.version}， 本地漏洞数量: {m.vuln_count}, "
        f"检查周期: {m.interval} \n\n",
        "成功的数据源:\n",
        "".join(f"- [{p.display_name}]({p.link})\n" for p in m.provider),
        "\n\n失败的数据源:\n",
    ]
    if m.failed_provider:
        parts.append("".join(f"- [{p.display_name}]({p.link})\n" for p in m.failed_provider))
    else:
        parts.append("无")
    return "".join(parts)


def raw_initial_message(m: InitialMessage) -> RawMessage:
    return RawMessage(content=m, type=RAW_MESSAGE_TYPE_INITIAL)


def raw_text_message(m: str) -> RawMessage:
    return RawMessage(content=TextMessage(message=m), type=RAW_MESSAGE_TYPE_TEXT)


def raw_vuln_info_message(m: VulnInfo) -> RawMessage:
    return RawMessage(content=m, type=RAW_MESSAGE_TYPE_VULN_INFO)