from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import urlparse

from pollreport.agents.query_refiner import QueryRefiner
from pollreport.config import settings
from pollreport.errors import InvalidQueryError, UpstreamRateLimitError
from pollreport.llm_client import GenerationConfig, GenerationProvider, ReportPrompt, get_provider
from pollreport.models.poll import Article, Poll
from pollreport.services import logger as log_service
from pollreport.services.chart_embed import replace_chart_placeholders
from pollreport.services.prompt_store import render_prompt
from pollreport.services.reliability import RetryPolicy, with_retry, with_timeout
from pollreport.tools.article_store import ArticleGateway
from pollreport.tools.poll_search import PollSearchGateway

NO_DATA_REPORT = (
    "I couldn't find any relevant survey data for your question. "
    "Please try a different query."
)


class PollSearcher(Protocol):
    async def search(self, query: str, limit: int) -> list[Poll]: ...


class ArticleFetcher(Protocol):
    async def fetch_articles(self, urls: list[str]) -> list[Article]: ...


class Refiner(Protocol):
    async def refine(self, question: str) -> list[str]: ...


@dataclass
class ReportOutcome:
    report: str
    queries: list[str] = field(default_factory=list)
    poll_ids: list[str] = field(default_factory=list)
    article_count: int = 0
    provider: str | None = None


def dedupe_polls(polls: list[Poll]) -> list[Poll]:
    """Drop repeated poll ids, keeping each id's first occurrence in order."""
    seen: set[str] = set()
    unique: list[Poll] = []
    for poll in polls:
        if poll.id in seen:
            continue
        seen.add(poll.id)
        unique.append(poll)
    return unique


def is_article_url(url: Any) -> bool:
    if not isinstance(url, str):
        return False
    candidate = url.strip()
    if not candidate or candidate == "#":
        return False
    parsed = urlparse(candidate)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def extract_article_urls(polls: list[Poll]) -> list[str]:
    """Absolute http(s) source URLs of `polls`, deduplicated in poll order."""
    urls: list[str] = []
    seen: set[str] = set()
    for poll in polls:
        if not is_article_url(poll.url):
            continue
        url = poll.url.strip()
        if url in seen:
            continue
        seen.add(url)
        urls.append(url)
    return urls


def poll_metadata(polls: list[Poll]) -> list[dict[str, Any]]:
    return [
        {
            "id": poll.id,
            "title": poll.display_title,
            "url": poll.url or "#",
            "chartData": {
                "xValues": poll.chartdata.labels,
                "yValues": poll.chartdata.values,
                "xLabel": poll.chartdata.x_label,
                "yLabel": poll.chartdata.y_label,
            },
            "explanation": poll.chartdata.explanation,
            "source": poll.chartdata.survey_source,
            "year": poll.chartdata.survey_year,
            "country": poll.sourcecountry,
        }
        for poll in polls
    ]


def article_section(articles: list[Article]) -> str:
    blocks = [
        f"SOURCE: {article.url}\n\n{article.truncated_text()}\n\n---\n\n"
        for article in articles
        if article.text
    ]
    if not blocks:
        return render_prompt("report.no_articles_warning")
    return render_prompt("report.article_section", articles="".join(blocks))


def build_report_prompt(
    question: str,
    articles: list[Article],
    polls: list[Poll],
    *,
    report_format: str = "markdown",
) -> ReportPrompt:
    """Assemble the grounding prompt: article text first, poll metadata second."""
    fmt = report_format if report_format in ("markdown", "html") else "markdown"
    user = render_prompt(
        "report.user_prompt",
        query=question,
        article_section=article_section(articles),
        poll_metadata=json.dumps(poll_metadata(polls), indent=2, ensure_ascii=False),
        format_instructions=render_prompt(f"report.format.{fmt}"),
    )
    return ReportPrompt(system=render_prompt("report.system_prompt"), user=user)


class ReportOrchestrator:
    """Turns a user question into a grounded narrative report.

    Flow:
      1. Validate the question and the generation provider's credentials
      2. Optionally refine the question into up to three search queries
      3. Fan out: one poll search per query, concurrently
      4. Merge and dedupe polls by id (no polls ends the run with a notice)
      5. Keep valid article URLs and fetch their stored article text
      6. Build the prompt and generate under one overall deadline, retrying rate limits
      7. Replace [CHART:<id>] placeholders with embeddable chart markup

    With no usable article URLs the report is generated from poll metadata
    alone and no article lookup is made.
    """

    def __init__(
        self,
        *,
        provider: GenerationProvider | None = None,
        provider_name: str | None = None,
        searcher: PollSearcher | None = None,
        articles: ArticleFetcher | None = None,
        refiner: Refiner | None = None,
        refine_queries: bool | None = None,
        search_limit: int | None = None,
        report_format: str | None = None,
        generation_config: GenerationConfig | None = None,
        generation_timeout: float | None = None,
        retry_policy: RetryPolicy | None = None,
        embed_base_url: str | None = None,
    ):
        self.provider = provider
        self.provider_name = provider_name
        self.searcher = searcher or PollSearchGateway()
        self.articles = articles or ArticleGateway()
        self.refine_queries = (
            settings.query_refinement_enabled if refine_queries is None else refine_queries
        )
        self.refiner = refiner
        self.search_limit = max(int(search_limit or settings.report_search_limit), 1)
        self.report_format = (report_format or settings.report_format).lower().strip()
        self.generation_config = generation_config or GenerationConfig(
            max_tokens=settings.report_max_tokens,
            temperature=settings.report_temperature,
        )
        self.generation_timeout = generation_timeout or settings.generation_timeout_seconds
        self.retry_policy = retry_policy or RetryPolicy(
            attempts=settings.generation_max_attempts,
            base_delay=settings.generation_retry_base_delay,
            retry_on=(UpstreamRateLimitError,),
            name="report generation",
        )
        self.embed_base_url = embed_base_url

    async def run(self, question: str) -> ReportOutcome:
        question = (question or "").strip() if isinstance(question, str) else ""
        if not question:
            raise InvalidQueryError()
        provider = self.provider or get_provider(self.provider_name)

        t0 = time.monotonic()
        queries = await self._acquire_queries(question)
        polls = await self._search_all(queries)
        log_service.log_report_step(
            "search", "completed", {"queries": len(queries), "polls": len(polls)}
        )
        if not polls:
            return ReportOutcome(report=NO_DATA_REPORT, queries=queries, provider=provider.name)

        urls = extract_article_urls(polls)
        articles = await self.articles.fetch_articles(urls) if urls else []
        log_service.log_report_step(
            "articles", "completed", {"urls": len(urls), "articles": len(articles)}
        )

        prompt = build_report_prompt(question, articles, polls, report_format=self.report_format)
        text = await self._generate(provider, prompt)

        titles = {poll.id: poll.display_title for poll in polls}
        report = replace_chart_placeholders(text, titles, base_url=self.embed_base_url)
        log_service.log_report_step(
            "report",
            "completed",
            {
                "provider": provider.name,
                "runtime_ms": int((time.monotonic() - t0) * 1000),
                "chars": len(report),
            },
        )
        return ReportOutcome(
            report=report,
            queries=queries,
            poll_ids=[poll.id for poll in polls],
            article_count=len(articles),
            provider=provider.name,
        )

    async def _acquire_queries(self, question: str) -> list[str]:
        if not self.refine_queries:
            return [question]
        if self.refiner is None:
            self.refiner = QueryRefiner()
        try:
            queries = await self.refiner.refine(question)
        except Exception as exc:
            log_service.log_event(
                event_type="refinement_fallback",
                message="Query refinement failed; searching with the original question",
                error=f"{type(exc).__name__}: {exc}",
            )
            return [question]
        return queries or [question]

    async def _search_all(self, queries: list[str]) -> list[Poll]:
        results = await asyncio.gather(
            *(self.searcher.search(query, self.search_limit) for query in queries)
        )
        merged: list[Poll] = []
        for polls in results:
            merged.extend(polls)
        return dedupe_polls(merged)

    async def _generate(self, provider: GenerationProvider, prompt: ReportPrompt) -> str:
        # One deadline covers every attempt and the backoff between them.
        return await with_timeout(
            with_retry(
                lambda: provider.generate(prompt, self.generation_config),
                self.retry_policy,
            ),
            self.generation_timeout,
            what=f"{provider.name} report generation",
        )
