# watchvuln

Crawlers for several public vulnerability sources, markdown rendering of
the findings, push interfaces for sending them on, and a small server that
receives and prints webhook messages.

## Data types (`watchvuln.models`)

- `VulnInfo` – one vulnerability: `unique_key`, `title`, `description`,
  `severity`, `cve`, `disclosure`, `solutions`, `github_search`,
  `references`, `tags`, `from_`, `reason` and the `creator` crawler.
  `to_dict()` gives its JSON form (the key for `from_` is `"from"`, the
  creator is left out) and `VulnInfo.from_dict()` reads it back.
- `SeverityLevel` – `LOW`, `MEDIUM`, `HIGH`, `CRITICAL`, valued by their
  display text (`低危`, `中危`, `高危`, `严重`).
- `Provider` – `name`, `display_name` and `link` of a source.
- `Grabber` – the crawler interface: `provider_info()`,
  `get_update(page_limit)` and `is_valuable(info)`.
- `new_http_session()` – a `requests` session with a browser user agent,
  a 10 second timeout, three retries five seconds apart and cookies
  disabled; `wrap_api_session()` adds JSON API headers.
- `merge_unique_string(s1, s2)` – merge two lists without duplicates,
  keeping first-seen order.

## Sources

| Module | Crawler | What `get_update` reads |
| --- | --- | --- |
| `watchvuln.avd` | `AVDCrawler` | Aliyun AVD high-risk list, up to `page_limit` pages, plus each detail page |
| `watchvuln.kev` | `KEVCrawler` | CISA KEV JSON feed, the newest `page_limit * 10` entries by date added |
| `watchvuln.struts2` | `Struts2Crawler` | the last `vuln_limit` Apache Struts2 security bulletins |
| `watchvuln.oscs` | `OSCSCrawler` | OSCS intelligence list, up to `page_limit` pages, plus each detail |
| `watchvuln.threatbook` | `ThreatBookCrawler` | ThreatBook notices from an RSS feed, then each article |

`is_valuable` keeps high and critical findings; `OSCSCrawler` in addition
requires the `发布预警` tag. Every record of the KEV feed is marked critical.

The parsing steps are plain functions that take page text or decoded JSON,
so they can be used without network access, for example
`avd.parse_page_count`, `avd.parse_list_links`, `avd.parse_detail`,
`kev.select_vulns`, `struts2.parse_bulletin_index`, `struts2.parse_bulletin`,
`struts2.severity_from_string`, `oscs.page_count_from_total`,
`oscs.parse_detail`, `threatbook.parse_feed`, `threatbook.filter_vuln_items`,
`threatbook.title_without_type` and `threatbook.parse_article`.

## Messages (`watchvuln.messages`)

- `render_vuln_info(v)` – markdown for a `VulnInfo`. The description is cut
  to 500 characters (followed by `...`) and markdown-escaped, and at most
  eight references are listed.
- `render_initial_msg(m)` – markdown for an `InitialMessage` (version,
  local vulnerability count, interval, working and failed providers).
- `escape_markdown(text)` – backslash-escapes markdown control characters.
- `RawMessage` – a typed envelope (`content`, `type`) whose `to_dict()` is
  the JSON posted to webhooks; build one with `raw_vuln_info_message`,
  `raw_text_message` or `raw_initial_message`. The types are
  `watchvuln-vulninfo`, `watchvuln-text` and `watchvuln-initial`.

## Pushers (`watchvuln.pusher`)

`TextPusher` (`push_text`, `push_markdown`) and `RawPusher` (`push_raw`)
are the interfaces to implement for a delivery channel. `MultiTextPusher`
and `MultiRawPusher` send to several pushers in order and stop at the
first one that raises.

## Receiving webhooks

```
watchvuln-webhook 127.0.0.1:1111
```

This serves `http://127.0.0.1:1111/webhook`. Each body is decoded with
`handle_webhook_data`, which prints the message and returns an
`InitialMessage`, `TextMessage` or `VulnInfo` according to its `type`, or
`None` (after printing it as unknown data) for any other type. A body that
cannot be decoded gets a 500 reply carrying the error text; other paths get
404. `make_server(addr)` builds the server for a `host:port` address. Run
without an address, the command prints its usage.

## A few helpers

```python
from watchvuln.models import merge_unique_string
from watchvuln.messages import escape_markdown

merge_unique_string(["a", "b"], ["b", "c"])  # ['a', 'b', 'c']
escape_markdown("This is not a *bold text")  # 'This is not a \\*bold text'
```

## What this package does not do

- It has no command that polls the sources on a schedule; you call
  `get_update` yourself.
- It stores nothing: there is no database of seen vulnerabilities and no
  de-duplication across runs or sources.
- It ships no ready-made chat-bot or webhook sender. Only the
  `TextPusher` / `RawPusher` interfaces and their fan-out classes are
  provided; the delivery to a service is yours to implement.