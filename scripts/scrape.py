#!/usr/bin/env python3
"""Run one Texas Senate bill scrape now and print a summary.

Scrapes the Senate-filed report, optionally enriches each bill from its
History/BillStages pages (and full text), upserts everything into the JSON
store, and appends the run to the run log.

Usage::

    python scripts/scrape.py                       # list report only
    python scripts/scrape.py --details --limit 25  # enrich the first 25 bills
    python scripts/scrape.py --details --text      # also fetch full bill text
    python scripts/scrape.py --details --no-text   # skip text even under TX_PROFILE=prod
    python scripts/scrape.py --store /tmp/bills    # alternate store directory
    python scripts/scrape.py --history 10          # show the last 10 runs and exit
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

# Ensure the project is importable
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))

from tx_senate_tracker.config import CACHE_DIR, DETAIL_LIMIT, FETCH_BILL_TEXT  # noqa: E402
from tx_senate_tracker.pipeline import BillPipeline  # noqa: E402
from tx_senate_tracker.run_log import load_recent_runs  # noqa: E402
from tx_senate_tracker.scheduler import ScrapeRunResult, ScrapingScheduler  # noqa: E402
from tx_senate_tracker.scrapers.fetcher import DocumentFetcher  # noqa: E402
from tx_senate_tracker.storage import BillRepository, JsonFileStore  # noqa: E402

console = Console()


def _print_result(result: ScrapeRunResult, scheduler: ScrapingScheduler) -> None:
    table = Table(title="Scrape run", show_header=False)
    table.add_column("field", style="bold cyan")
    table.add_column("value")
    outcome = "[green]success[/]" if result.success else "[red]failed[/]"
    table.add_row("Outcome", outcome)
    table.add_row("Message", result.message)
    table.add_row("Attempts", f"{result.attempt}/{scheduler.max_retries}")
    table.add_row("Bills processed", str(result.bills_processed))
    table.add_row("New", str(result.bills_saved))
    table.add_row("Updated", str(result.bills_updated))
    table.add_row("Save errors", str(len(result.errors)))
    if result.used_fallback:
        table.add_row("Fallback", "[yellow]only stale/placeholder data was available[/]")
    if result.error:
        table.add_row("Error", f"[red]{result.error}[/]")
    breaker = scheduler.pipeline.breaker.snapshot()
    table.add_row("Circuit", f"{breaker['state']} ({breaker['failure_count']} failures)")
    console.print(table)

    for err in result.errors[:10]:
        console.print(f"[dim]  {err['billNumber']}: {err['error']}[/]")
    detail_errors = scheduler.pipeline.last_detail_errors
    if detail_errors:
        console.print(f"[yellow]{len(detail_errors)} bills kept without details[/]")


def _print_history(n: int) -> None:
    runs = load_recent_runs(n, task="scrape")
    if not runs:
        console.print("[dim]No scrape runs recorded yet.[/]")
        return
    table = Table(title=f"Last {len(runs)} scrape runs")
    for col in ("Started", "Trigger", "Status", "Duration", "Bills", "New", "Updated"):
        table.add_column(col)
    for r in runs:
        status = "[green]ok[/]" if r.status == "ok" else f"[red]{r.status}[/]"
        table.add_row(
            r.started_at[:19],
            str(r.meta.get("trigger", "")),
            status,
            f"{r.duration_s or 0:.1f}s",
            str(r.meta.get("bills_processed", "")),
            str(r.meta.get("bills_saved", "")),
            str(r.meta.get("bills_updated", "")),
        )
    console.print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scrape Texas Senate bills once.")
    parser.add_argument(
        "--details",
        action="store_true",
        help="Enrich each bill from its History and BillStages pages.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=DETAIL_LIMIT,
        help="With --details, only enrich the first N bills (0 = all).",
    )
    parser.add_argument(
        "--text",
        action=argparse.BooleanOptionalAction,
        default=FETCH_BILL_TEXT,
        help="With --details, also fetch full bill text (HTML, then PDF). "
        "Defaults to TX_FETCH_BILL_TEXT; --no-text turns it off.",
    )
    parser.add_argument(
        "--store",
        type=Path,
        default=CACHE_DIR / "store",
        help="Directory for the JSON bill store (default: cache/store).",
    )
    parser.add_argument(
        "--history",
        type=int,
        metavar="N",
        default=0,
        help="Show the last N scrape runs from the run log and exit.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s:     %(message)s",
        stream=sys.stderr,
    )

    if args.history:
        _print_history(args.history)
        return 0

    pipeline = BillPipeline(DocumentFetcher(), fetch_text=args.text)
    repository = BillRepository(JsonFileStore(args.store))
    scheduler = ScrapingScheduler(
        pipeline,
        repository,
        with_details=args.details,
        detail_limit=args.limit,
    )

    with console.status("Scraping Texas Legislature Online ..."):
        result = scheduler.run_manual_scrape()

    _print_result(result, scheduler)
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
