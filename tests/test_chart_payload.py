from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from pollreport.models.poll import (
    Article,
    ChartPayload,
    ChartPayloadError,
    Poll,
    TRUNCATION_MARKER,
    chart_payload_or_empty,
    parse_chart_payload,
)


CHART = {
    "XValue": ["Yes", "No", "Unsure"],
    "YValue": [54.0, 38.0, 8.0],
    "XLabel": "Answer",
    "YLabel": "Percent",
    "Title": "Support for the policy",
    "Explanation": "Share of adults supporting the policy.",
    "SurveySource": "Example Institute",
    "SurveyYear": 2024,
}


def test_parse_chart_payload_decodes_json_string():
    payload = parse_chart_payload(json.dumps(CHART))

    assert payload.labels == ["Yes", "No", "Unsure"]
    assert payload.values == [54.0, 38.0, 8.0]
    assert payload.title == "Support for the policy"
    assert payload.survey_year == "2024"
    assert payload.chart_kind is None


def test_parse_chart_payload_accepts_dict_and_none():
    assert parse_chart_payload(CHART).x_label == "Answer"
    assert parse_chart_payload(None) == ChartPayload.empty()
    assert parse_chart_payload("   ") == ChartPayload.empty()


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        "[1, 2, 3]",
        json.dumps({"XValue": ["a", "b"], "YValue": [1.0]}),
    ],
)
def test_parse_chart_payload_rejects_bad_payloads(raw):
    with pytest.raises(ChartPayloadError):
        parse_chart_payload(raw)


def test_chart_payload_or_empty_defaults_on_failure():
    payload = chart_payload_or_empty("{broken", poll_id="p1")

    assert payload == ChartPayload.empty()


def test_chart_payload_serializes_with_store_keys():
    dumped = parse_chart_payload(CHART).model_dump(by_alias=True)

    assert dumped["XValue"] == ["Yes", "No", "Unsure"]
    assert dumped["SurveySource"] == "Example Institute"


def test_poll_from_row_parses_string_chartdata_and_coerces_fields():
    row = {
        "id": 42,
        "title": None,
        "url": "https://example.com/poll",
        "seendate": datetime(2025, 3, 1, tzinfo=timezone.utc),
        "chartdata": json.dumps(CHART),
        "sourcecountry": "Germany",
        "score": 0.87,
    }

    poll = Poll.from_row(row)

    assert poll.id == "42"
    assert poll.title == ""
    assert poll.display_title == "Support for the policy"
    assert poll.seendate == "2025-03-01T00:00:00+00:00"
    assert poll.chartdata.labels == ["Yes", "No", "Unsure"]
    assert poll.score == pytest.approx(0.87)


def test_poll_from_row_keeps_poll_when_chartdata_is_broken():
    poll = Poll.from_row({"id": "p9", "title": "T", "chartdata": "{oops"})

    assert poll.id == "p9"
    assert poll.chartdata == ChartPayload.empty()


def test_article_truncates_to_exactly_4000_characters():
    article = Article(url="https://example.com/a", text="a" * 4000 + "b" * 25)

    truncated = article.truncated_text()

    assert truncated == "a" * 4000 + TRUNCATION_MARKER
    assert "b" not in truncated


def test_article_short_text_is_untouched_and_missing_text_is_empty():
    assert Article(url="u", text="short").truncated_text() == "short"
    assert Article(url="u", text=None).text == ""
