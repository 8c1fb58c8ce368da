from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

from pollreport.models.poll import FlatPollChart, Poll

ProviderName = Literal["azure", "gemini"]


# --- Requests ---


class ReportRequest(BaseModel):
    query: str = ""
    model: ProviderName | None = None


# --- Responses ---


class ReportResponse(BaseModel):
    report: str


class ErrorResponse(BaseModel):
    error: str


class SearchResponse(BaseModel):
    polls: list[Poll]


class RandomPoll(BaseModel):
    title: str
    url: str
    seendate: str
    chartdata: dict
    sourcecountry: str


class RandomPollsResponse(BaseModel):
    polls: list[RandomPoll]


class MetricsResponse(BaseModel):
    totalPolls: FlatPollChart
    countriesData: FlatPollChart
    domainsData: FlatPollChart
    languagesData: FlatPollChart


class ProviderInfo(BaseModel):
    id: str
    name: str
    model: str
    configured: bool


class ProvidersResponse(BaseModel):
    default: str
    models: list[ProviderInfo]
