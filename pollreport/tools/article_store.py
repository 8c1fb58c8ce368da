from __future__ import annotations

from pollreport.models.poll import Article
from pollreport.services import database as db
from pollreport.services.logger import log_db_operation


class ArticleGateway:
    """Looks up previously scraped article bodies by exact source URL."""

    async def fetch_articles(self, urls: list[str]) -> list[Article]:
        """Return stored articles for `urls`; unknown URLs are omitted.

        Errors are swallowed: a missing article only degrades the report.
        """
        if not urls:
            return []
        try:
            rows = await db.get_article_texts(urls)
        except Exception as exc:
            log_db_operation("select", "polls", "failed", details="article text", error=str(exc))
            return []

        articles = [
            Article(url=row.get("Url") or "", text=row.get("ArticleText"))
            for row in rows
            if row.get("Url")
        ]
        log_db_operation(
            "select", "polls", "success", details=f"{len(articles)}/{len(urls)} articles"
        )
        return articles
