"""Message rendering for Telegram (MarkdownV2), e-mail (HTML) and plain text."""

from __future__ import annotations

import html
import re
from datetime import datetime
from typing import Sequence

from tenderwatch.db.schema import Record

MAX_INLINE_ITEMS = 10
TELEGRAM_LIMIT = 4096

_MD_SPECIAL = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")

_CELL = 'style="padding:8px;border-bottom:1px solid #eee"'
_HEAD = 'style="padding:8px;text-align:left"'


def escape_markdown(text: str) -> str:
    """Escape every MarkdownV2 special character."""
    return _MD_SPECIAL.sub(r"\\\1", text or "")


def format_brl(value: float | None) -> str:
    if value is None:
        return "not informed"
    # 1,234,567.89 -> 1.234.567,89
    us = f"{value:,.2f}"
    return "R$ " + us.replace(",", "_").replace(".", ",").replace("_", ".")


def _fmt_dt(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.strftime("%d/%m/%Y %H:%M")


def _location(record: Record) -> str:
    return "/".join(p for p in (record.city, record.region) if p) or "N/A"


def _overflow(items: Sequence[Record]) -> int:
    return max(0, len(items) - MAX_INLINE_ITEMS)


def truncate(text: str, limit: int = TELEGRAM_LIMIT) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def format_telegram_batch(alert_name: str, items: Sequence[Record]) -> str:
    lines = [
        f"*Alert: {escape_markdown(alert_name)}*",
        escape_markdown(f"{len(items)} new notice(s) found:"),
        "",
    ]
    for i, r in enumerate(items[:MAX_INLINE_ITEMS], start=1):
        summary = escape_markdown((r.description or "")[:100])
        value = escape_markdown(format_brl(r.estimated_value))
        lines.append(f"{i}\\. \\[{escape_markdown(r.region or '??')}\\] {summary} \\- {value}")
    extra = _overflow(items)
    if extra:
        lines.append("")
        lines.append(f"_\\+{extra} more_")
    return truncate("\n".join(lines))


def format_plain_batch(alert_name: str, items: Sequence[Record]) -> str:
    lines = [f"Alert: {alert_name}", f"{len(items)} new notice(s) found:", ""]
    for i, r in enumerate(items[:MAX_INLINE_ITEMS], start=1):
        lines.append(f"{i}. [{r.region or '??'}] {(r.description or '')[:100]} - {format_brl(r.estimated_value)}")
    extra = _overflow(items)
    if extra:
        lines.append("")
        lines.append(f"+{extra} more")
    return truncate("\n".join(lines))


def format_email_html(alert_name: str, items: Sequence[Record]) -> str:
    rows = []
    for r in items[:MAX_INLINE_ITEMS]:
        cells = [
            (r.description or "")[:120],
            r.agency_name or "N/A",
            _location(r),
            format_brl(r.estimated_value),
            r.category_name or str(r.category_code),
            _fmt_dt(r.opening_at),
        ]
        link = f'<a href="{html.escape(r.source_url)}">{html.escape(r.external_id)}</a>' if r.source_url else html.escape(r.external_id)
        tds = "".join(f"<td {_CELL}>{html.escape(c)}</td>" for c in cells)
        rows.append(f"<tr>{tds}<td {_CELL}>{link}</td></tr>")

    extra = _overflow(items)
    more = f"<p>+{extra} more</p>" if extra else ""
    headers = "".join(f"<th {_HEAD}>{h}</th>" for h in ("Object", "Agency", "Location", "Value", "Category", "Opens", "ID"))
    return (
        '<div style="font-family:Arial,sans-serif;max-width:800px;margin:0 auto">'
        f'<h2 style="color:#D4A017">tenderwatch: {html.escape(alert_name)}</h2>'
        f"<p>{len(items)} new notice(s) found:</p>"
        '<table style="width:100%;border-collapse:collapse;font-size:13px">'
        f'<thead><tr style="background:#f5f5f5">{headers}</tr></thead>'
        f"<tbody>{''.join(rows)}</tbody></table>{more}</div>"
    )

