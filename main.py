"""PollReport - survey-grounded reports

Simple CLI for generating a report from a question.
"""

import argparse
import asyncio
import sys

from pollreport.agents.orchestrator import ReportOrchestrator
from pollreport.errors import ReportError
from pollreport.services import database as db


async def run_report(query: str, model: str | None = None, refine: bool | None = None) -> int:
    """Generate and print a report for the given question."""
    print(f"Report query: {query}")
    print("-" * 50)

    orchestrator = ReportOrchestrator(provider_name=model, refine_queries=refine)
    try:
        outcome = await orchestrator.run(query)
    except ReportError as exc:
        print(f"\n[!] Error: {exc.public_message} ({exc})")
        return 1
    finally:
        await db.close_pool()

    print(f"[*] Provider: {outcome.provider}")
    print(f"[*] Queries: {', '.join(outcome.queries)}")
    print(f"[*] Polls: {len(outcome.poll_ids)}  Articles: {outcome.article_count}")
    print(f"\n{'='*50}")
    print("REPORT:")
    print(f"{'='*50}")
    print(outcome.report)
    return 0


def main():
    parser = argparse.ArgumentParser(description="PollReport report generator")
    parser.add_argument("--query", "-q", required=True, help="Question to report on")
    parser.add_argument(
        "--model",
        "-m",
        choices=["azure", "gemini"],
        help="Generation provider (default: from config)",
    )
    parser.add_argument(
        "--refine",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Expand the question into several searches first (default: from config)",
    )

    args = parser.parse_args()

    sys.exit(asyncio.run(run_report(args.query, args.model, args.refine)))


if __name__ == "__main__":
    main()
