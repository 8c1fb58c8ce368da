"""Chart placeholder substitution and the standalone embeddable chart page."""
from __future__ import annotations

import html
import json
import re
from pathlib import Path
from string import Template
from typing import Mapping

from pollreport.config import settings
from pollreport.models.poll import FlatPollChart

CHART_PLACEHOLDER_RE = re.compile(r"\[CHART:\s*([^\]\s]+)\s*\]")
FALLBACK_CHART_TITLE = "Poll chart"

EMBED_TEMPLATE_PATH = Path(__file__).resolve().parents[1] / "templates" / "embed.html"

# Headers that let any origin frame the embed view.
EMBED_HEADERS = {
    "Content-Security-Policy": "frame-ancestors 'self' *;",
}


def embed_url(poll_id: str, base_url: str | None = None) -> str:
    base = (settings.embed_base_url if base_url is None else base_url).rstrip("/")
    return f"{base}/embed/{poll_id}"


def chart_embed_markup(poll_id: str, title: str | None, *, base_url: str | None = None) -> str:
    label = html.escape(title or FALLBACK_CHART_TITLE, quote=True)
    src = html.escape(embed_url(poll_id, base_url), quote=True)
    return (
        f'<div class="chart-embed" data-poll-id="{html.escape(poll_id, quote=True)}">'
        f'<iframe src="{src}" title="{label}" width="100%" height="420" '
        f'frameborder="0" loading="lazy"></iframe>'
        f"<p class=\"chart-caption\">{label}</p>"
        f"</div>"
    )


def replace_chart_placeholders(
    text: str,
    titles: Mapping[str, str],
    *,
    base_url: str | None = None,
) -> str:
    """Replace every `[CHART:<id>]` with embed markup; the rest of `text` is untouched."""

    def substitute(match: re.Match[str]) -> str:
        poll_id = match.group(1)
        return chart_embed_markup(poll_id, titles.get(poll_id), base_url=base_url)

    return CHART_PLACEHOLDER_RE.sub(substitute, text)


def render_embed_page(chart: FlatPollChart | None, *, error: str | None = None) -> str:
    """Render a standalone HTML page drawing one chart (Chart.js from a CDN)."""
    template = Template(EMBED_TEMPLATE_PATH.read_text(encoding="utf-8"))
    if chart is None:
        return template.substitute(
            page_title=html.escape("Chart unavailable"),
            heading=html.escape("Error"),
            message=html.escape(error or "No chart data available for this poll."),
            chart_json="null",
        )

    payload = {
        "kind": chart.chart_kind or "bar",
        "labels": chart.labels,
        "values": chart.values,
        "xLabel": chart.x_label,
        "yLabel": chart.y_label,
        "title": chart.title,
    }
    footer = " · ".join(part for part in (chart.survey_source, chart.survey_year) if part)
    # "</" is escaped so the JSON cannot close the script element.
    chart_json = json.dumps(payload).replace("</", "<\\/")
    return template.substitute(
        page_title=html.escape(chart.title),
        heading=html.escape(chart.title),
        message=html.escape(footer),
        chart_json=chart_json,
    )
