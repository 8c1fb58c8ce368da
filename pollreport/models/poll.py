"""Poll, chart payload and article records read from the poll store."""
from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from pollreport.services.logger import logger

ARTICLE_CHAR_BUDGET = 4000
TRUNCATION_MARKER = "... [truncated]"


class ChartPayloadError(ValueError):
    """Raised when a stored chart payload cannot be turned into a ChartPayload."""


class ChartPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    labels: list[str] = Field(default_factory=list, alias="XValue")
    values: list[int | float] = Field(default_factory=list, alias="YValue")
    x_label: str = Field("", alias="XLabel")
    y_label: str = Field("", alias="YLabel")
    title: str = Field("", alias="Title")
    explanation: str = Field("", alias="Explanation")
    survey_source: str = Field("", alias="SurveySource")
    survey_customer: str = Field("", alias="SurveyCustomer")
    survey_year: str = Field("", alias="SurveyYear")
    data_assessment: str = Field("", alias="DataAssessment")
    chart_kind: str | None = Field(None, alias="ChartType")

    @field_validator(
        "x_label",
        "y_label",
        "title",
        "explanation",
        "survey_source",
        "survey_customer",
        "survey_year",
        "data_assessment",
        mode="before",
    )
    @classmethod
    def _text_or_empty(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value)

    @field_validator("labels", mode="before")
    @classmethod
    def _labels_as_text(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return [str(item) for item in value]
        return value

    @field_validator("values", mode="before")
    @classmethod
    def _values_or_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @model_validator(mode="after")
    def _labels_match_values(self) -> "ChartPayload":
        if len(self.labels) != len(self.values):
            raise ValueError(
                f"chart has {len(self.labels)} labels but {len(self.values)} values"
            )
        return self

    @classmethod
    def empty(cls) -> "ChartPayload":
        return cls()


def parse_chart_payload(raw: Any) -> ChartPayload:
    """Parse a stored chart payload (JSON string, dict or None).

    Raises ChartPayloadError for undecodable JSON, non-object payloads and
    payloads whose labels and values differ in length.
    """
    if raw is None:
        return ChartPayload.empty()
    if isinstance(raw, ChartPayload):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        if not raw.strip():
            return ChartPayload.empty()
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ChartPayloadError(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(raw, dict):
        raise ChartPayloadError(f"expected a JSON object, got {type(raw).__name__}")
    try:
        return ChartPayload.model_validate(raw)
    except ValidationError as exc:
        raise ChartPayloadError(str(exc)) from exc


def chart_payload_or_empty(raw: Any, poll_id: Any = None) -> ChartPayload:
    """Parse a payload, falling back to an empty one on any parse failure."""
    try:
        return parse_chart_payload(raw)
    except ChartPayloadError as exc:
        logger.warning(f"Failed to parse chartdata for poll id {poll_id}: {exc}")
        return ChartPayload.empty()


def _iso(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class Poll(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = ""
    url: str = ""
    seendate: str | None = None
    chartdata: ChartPayload = Field(default_factory=ChartPayload)
    sourcecountry: str = ""
    score: float = 0.0

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> str:
        return str(value)

    @field_validator("title", "url", "sourcecountry", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("seendate", mode="before")
    @classmethod
    def _seendate_as_text(cls, value: Any) -> str | None:
        return _iso(value)

    @field_validator("score", mode="before")
    @classmethod
    def _score_or_zero(cls, value: Any) -> float:
        return 0.0 if value is None else value

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Poll":
        """Build a poll from a `pollsearcher` row, parsing string chartdata."""
        poll_id = row.get("id")
        return cls(
            id=poll_id,
            title=row.get("title"),
            url=row.get("url"),
            seendate=row.get("seendate"),
            chartdata=chart_payload_or_empty(row.get("chartdata"), poll_id),
            sourcecountry=row.get("sourcecountry"),
            score=row.get("score"),
        )

    @property
    def display_title(self) -> str:
        return self.title or self.chartdata.title or "Untitled Poll"


class Article(BaseModel):
    url: str
    text: str = ""

    @field_validator("text", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> str:
        return "" if value is None else str(value)

    def truncated_text(self, budget: int = ARTICLE_CHAR_BUDGET) -> str:
        if len(self.text) > budget:
            return self.text[:budget] + TRUNCATION_MARKER
        return self.text


class FlatPollChart(BaseModel):
    """Flattened poll + chart object consumed by the chart views."""

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = Field(None, alias="survey_Id")
    title: str = Field(..., alias="survey_Title")
    labels: list[str] = Field(default_factory=list, alias="survey_XValue")
    values: list[int | float] = Field(default_factory=list, alias="survey_YValue")
    x_label: str = Field("", alias="survey_XLabel")
    y_label: str = Field("", alias="survey_YLabel")
    explanation: str = Field("", alias="survey_Explanation")
    survey_source: str = Field("", alias="survey_SurveySource")
    survey_year: str = Field("", alias="survey_SurveyYear")
    chart_kind: str = Field("bar", alias="survey_ChartType")
    url: str | None = Field(None, alias="survey_URL")
    source_country: str | None = Field(None, alias="survey_SourceCountry")
    seen_date: str | None = Field(None, alias="survey_SeenDate")
