"""Single-poll and random-sample lookups used by the chart endpoints."""
from __future__ import annotations

import json
from datetime import date, datetime, timedelta, timezone
from typing import Any

from pollreport.models.poll import FlatPollChart, chart_payload_or_empty
from pollreport.models.schemas import RandomPoll
from pollreport.services import database as db


def _coerce_json_object(value: Any) -> dict[str, Any]:
    """Normalize JSON-string fields into dictionaries."""
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def flatten_poll_row(row: dict[str, Any]) -> FlatPollChart:
    poll_id = str(row.get("id"))
    chart = chart_payload_or_empty(row.get("ChartData"), poll_id)
    seen = row.get("Seendate")
    if isinstance(seen, (datetime, date)):
        seen_date = seen.isoformat()
    elif seen:
        seen_date = str(seen)
    else:
        seen_date = _utc_now().isoformat()
    return FlatPollChart(
        id=poll_id,
        title=chart.title or row.get("Title") or "Untitled Poll",
        labels=chart.labels,
        values=chart.values,
        x_label=chart.x_label,
        y_label=chart.y_label,
        explanation=chart.explanation,
        survey_source=chart.survey_source or "Unknown Source",
        survey_year=chart.survey_year,
        chart_kind=chart.chart_kind or "bar",
        url=row.get("Url") or "#",
        source_country=row.get("SourceCountry") or "",
        seen_date=seen_date,
    )


async def get_flat_poll(poll_id: str) -> FlatPollChart | None:
    row = await db.get_poll(poll_id)
    if row is None:
        return None
    return flatten_poll_row(row)


def yesterday() -> date:
    return _utc_now().date() - timedelta(days=1)


async def get_random_polls(day: date | None = None) -> list[RandomPoll]:
    """Sample of charts first seen on `day` (yesterday by default)."""
    rows = await db.get_random_charts(day or yesterday())
    now = _utc_now().isoformat()
    polls: list[RandomPoll] = []
    for row in rows:
        chartdata = _coerce_json_object(row.get("chart_data_result"))
        polls.append(
            RandomPoll(
                title=chartdata.get("Title") or "Untitled Poll",
                url="#",
                seendate=now,
                chartdata=chartdata,
                sourcecountry=chartdata.get("SurveyCustomer") or "Unknown",
            )
        )
    return polls
