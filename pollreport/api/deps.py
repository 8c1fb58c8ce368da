from __future__ import annotations

from pollreport.agents.orchestrator import ReportOrchestrator
from pollreport.llm_client import (
    PROVIDER_NAMES,
    default_provider_name,
    provider_configured,
    provider_model,
)
from pollreport.services.metrics import MetricsService
from pollreport.tools.poll_search import PollSearchGateway

_PROVIDER_LABELS = {
    "azure": "Azure AI Inference",
    "gemini": "Google Gemini",
}

_metrics_service: MetricsService | None = None


def build_orchestrator(model: str | None = None) -> ReportOrchestrator:
    return ReportOrchestrator(provider_name=model)


def get_search_gateway() -> PollSearchGateway:
    return PollSearchGateway()


def get_metrics_service() -> MetricsService:
    """Process-wide metrics service; its cache lives as long as the process."""
    global _metrics_service
    if _metrics_service is None:
        _metrics_service = MetricsService()
    return _metrics_service


def get_available_providers() -> list[dict[str, object]]:
    """Return the generation providers a report can be written with."""
    return [
        {
            "id": name,
            "name": _PROVIDER_LABELS[name],
            "model": provider_model(name),
            "configured": provider_configured(name),
        }
        for name in PROVIDER_NAMES
    ]


def get_default_provider() -> str:
    return default_provider_name()
