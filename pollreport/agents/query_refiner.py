from __future__ import annotations

import json
import time
from typing import Any

import openai

from pollreport.config import settings
from pollreport.errors import (
    ConfigurationError,
    RefinementError,
    ReportError,
    UpstreamError,
    UpstreamRateLimitError,
    UpstreamTimeoutError,
)
from pollreport.llm_client import get_chat_client
from pollreport.services import logger as log_service
from pollreport.services.prompt_store import render_prompt
from pollreport.services.reliability import RetryPolicy, with_retry, with_timeout

FUNCTION_NAME = "generate_search_queries"
QUERY_FIELDS = ("primary_query", "contextual_query", "alternative_query")


def refinement_tool() -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": FUNCTION_NAME,
            "description": render_prompt("refinement.function_description"),
            "parameters": {
                "type": "object",
                "properties": {
                    field: {"type": "string", "description": field.replace("_", " ")}
                    for field in QUERY_FIELDS
                },
                "required": list(QUERY_FIELDS),
            },
        },
    }


def _function_name(tool_call: Any) -> str | None:
    # Custom (non-function) tool calls carry no `function` attribute.
    return getattr(getattr(tool_call, "function", None), "name", None)


def parse_refinement_response(response: Any) -> list[str]:
    """Extract the three queries from a forced function call.

    Raises RefinementError unless the response holds a well-formed call to
    the refinement function with every field populated. Case-insensitive
    duplicates are collapsed, keeping the first.
    """
    choices = getattr(response, "choices", None) or []
    if not choices:
        raise RefinementError("Refinement response contained no choices")
    message = getattr(choices[0], "message", None)
    tool_calls = getattr(message, "tool_calls", None) or []
    call = next(
        (tc for tc in tool_calls if _function_name(tc) == FUNCTION_NAME),
        None,
    )
    if call is None:
        raise RefinementError("Refinement response did not call the query function")

    try:
        arguments = json.loads(call.function.arguments or "{}")
    except json.JSONDecodeError as exc:
        raise RefinementError("Refinement function arguments were not valid JSON") from exc
    if not isinstance(arguments, dict):
        raise RefinementError("Refinement function arguments were not an object")

    queries: list[str] = []
    seen: set[str] = set()
    for field in QUERY_FIELDS:
        value = arguments.get(field)
        if not isinstance(value, str) or not value.strip():
            raise RefinementError(f"Refinement function left '{field}' empty")
        query = " ".join(value.split())
        key = query.lower()
        if key in seen:
            continue
        seen.add(key)
        queries.append(query)
    return queries


class QueryRefiner:
    """Expands one user question into up to three targeted poll searches."""

    def __init__(
        self,
        *,
        model: str | None = None,
        openai_client: Any | None = None,
        policy: RetryPolicy | None = None,
        timeout_seconds: float | None = None,
    ):
        self.model = model or settings.refinement_model
        self.client = openai_client
        self.policy = policy or RetryPolicy(
            attempts=settings.refinement_max_attempts,
            base_delay=settings.refinement_retry_base_delay,
            retry_on=(ReportError,),
            name="query refinement",
        )
        self.timeout_seconds = timeout_seconds or settings.refinement_timeout_seconds

    def _get_client(self) -> Any:
        if self.client is None:
            base_url = settings.refinement_base_url or settings.azure_inference_sdk_endpoint
            api_key = settings.refinement_api_key or settings.azure_inference_sdk_key
            if not base_url or not api_key:
                raise ConfigurationError("Missing query refinement credentials.")
            self.client = get_chat_client(base_url, api_key)
        return self.client

    async def refine(self, question: str) -> list[str]:
        client = self._get_client()
        queries = await with_retry(lambda: self._attempt(client, question), self.policy)
        log_service.log_report_step("refine", "completed", {"queries": queries})
        return queries

    async def _attempt(self, client: Any, question: str) -> list[str]:
        t0 = time.monotonic()
        try:
            response = await with_timeout(
                client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": render_prompt("refinement.system_prompt")},
                        {
                            "role": "user",
                            "content": render_prompt("refinement.user_prompt", question=question),
                        },
                    ],
                    tools=[refinement_tool()],
                    tool_choice={"type": "function", "function": {"name": FUNCTION_NAME}},
                    temperature=0,
                    max_tokens=512,
                ),
                self.timeout_seconds,
                what="query refinement",
            )
        except openai.RateLimitError as exc:
            raise UpstreamRateLimitError(str(exc), status=429) from exc
        except openai.APITimeoutError as exc:
            raise UpstreamTimeoutError(str(exc)) from exc
        except openai.APIStatusError as exc:
            raise UpstreamError(str(exc), status=exc.status_code) from exc
        except openai.APIConnectionError as exc:
            raise UpstreamError(str(exc)) from exc

        usage = getattr(response, "usage", None)
        log_service.log_llm_call(
            model=self.model,
            caller="refinement",
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return parse_refinement_response(response)
