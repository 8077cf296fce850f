from __future__ import annotations

from tenderwatch.db.schema import Record
from tenderwatch.services import templates


def _records(n: int) -> list[Record]:
    return [
        Record(
            external_id=f"ID-{i}",
            description=f"Objeto número {i}",
            category_code=6,
            region="SP",
            estimated_value=1234.5,
            source_url="https://example.com/x?a=1&b=2",
        )
        for i in range(n)
    ]


def test_escape_markdown():
    assert templates.escape_markdown("a.b-c (d)!") == "a\\.b\\-c \\(d\\)\\!"


def test_format_brl():
    assert templates.format_brl(1234567.891) == "R$ 1.234.567,89"
    assert templates.format_brl(None) == "not informed"


def test_plain_batch_overflow():
    body = templates.format_plain_batch("TI", _records(12))

    numbered = [line for line in body.splitlines() if "[SP]" in line]
    assert len(numbered) == 10
    assert body.endswith("+2 more")
    assert "12 new notice(s)" in body


def test_plain_batch_without_overflow():
    body = templates.format_plain_batch("TI", _records(3))
    assert "more" not in body


def test_telegram_batch_is_escaped():
    body = templates.format_telegram_batch("TI (geral)", _records(11))

    assert body.startswith("*Alert: TI \\(geral\\)*")
    assert "R$ 1\\.234,50" in body
    assert "_\\+1 more_" in body


def test_email_html_escapes_content():
    body = templates.format_email_html("<TI>", _records(1))

    assert "&lt;TI&gt;" in body
    assert "a=1&amp;b=2" in body
    assert "ID-0" in body
