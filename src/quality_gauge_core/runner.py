"""
quality-gauge-core CLI Runner

Minimal CLI for scoring a batch of translation keys with an LLM grader.

Usage:
    python -m quality_gauge_core.runner --input keys.json
    python -m quality_gauge_core.runner --input keys.json --model gemini-2.5-flash --output-dir results
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from functools import partial
from pathlib import Path

from dotenv import load_dotenv

from quality_gauge_core.cost_calc import build_cost_metrics, calculate_total_cost
from quality_gauge_core.evaluator_config import load_config
from quality_gauge_core.infrastructure.model_clients import create_client, create_model_config
from quality_gauge_core.key_loader import load_key_batch
from quality_gauge_core.scoring.ai_evaluator import create_evaluator
from quality_gauge_core.use_cases.health_check import evaluator_status, run_health_check
from quality_gauge_core.use_cases.quality_batch import (
    QualityBatchSummary,
    run_quality_batch,
    summary_to_dataframe,
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="quality-gauge-core: Score translations with an MQM grader",
    )
    parser.add_argument(
        "--input",
        required=True,
        help="Path to the key batch JSON file",
    )
    parser.add_argument(
        "--model",
        default=None,
        help="Grader model name (default: QE_GRADER_MODEL from .env)",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Number of keys evaluated in parallel (default: QE_BATCH_CONCURRENCY from .env)",
    )
    parser.add_argument(
        "--output-dir",
        default="results",
        help="Directory for output CSV files (default: results)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def _print_report(summary: QualityBatchSummary) -> None:
    print("=== Quality Scores ===\n")
    print(f"  {'Key':<40} {'Lang':<6} {'Acc':>4} {'Flu':>4} {'Term':>5} {'Score':>6} {'Issues':>7}")
    print(f"  {'-'*40} {'-'*6} {'-'*4} {'-'*4} {'-'*5} {'-'*6} {'-'*7}")
    for outcome in summary.outcomes:
        if not outcome.succeeded:
            print(f"  {outcome.key:<40} FAILED: {outcome.error}")
            continue
        for lang in outcome.languages:
            result = outcome.results.get(lang)
            if result is None:
                print(f"  {outcome.key:<40} {lang:<6} MISSING")
                continue
            print(
                f"  {outcome.key:<40} {lang:<6} "
                f"{result.score.accuracy:>4} "
                f"{result.score.fluency:>4} "
                f"{result.score.terminology:>5} "
                f"{outcome.combined_scores[lang]:>6} "
                f"{len(result.score.issues):>7}"
            )
    print()


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Load config
    config = load_config()
    if args.concurrency is not None:
        config.batch.concurrency = args.concurrency
    model_name = args.model or config.grader_model

    run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    results_path = output_dir / f"quality_{run_id}.csv"

    # Load keys
    print(f"\n=== Loading keys: {args.input} ===\n")
    try:
        batch = load_key_batch(args.input)
    except (OSError, ValueError) as e:
        print(f"ERROR: {e}")
        sys.exit(1)
    print(f"  Source language: {batch.source_language}")
    print(f"  Keys: {len(batch.items)}")
    print(f"  Grader: {model_name}")
    print(f"  Run ID: {run_id}")
    print()

    # Step 1: Health check
    available_models, _ = run_health_check([model_name], partial(create_client, config=config))
    if not available_models:
        print("ERROR: Grader is not available. Exiting.")
        sys.exit(1)

    evaluator = create_evaluator(config)
    status = evaluator_status(evaluator)
    if not status.can_attempt:
        print(f"ERROR: Circuit breaker is open. Retry after {status.remaining_open_seconds:.0f}s")
        sys.exit(1)

    # Step 2: Run the bulk evaluation
    model_config = create_model_config(model_name, config)
    total_keys = len(batch.items)

    def _progress(processed: int, total: int) -> None:
        print(f"[{processed}/{total}] translations evaluated")

    print(f"=== Evaluating ({total_keys} keys) ===\n")
    summary = run_quality_batch(
        evaluator,
        batch.items,
        batch.source_language,
        model_config,
        config=config.batch,
        progress_callback=_progress,
    )
    print()

    # Step 3: Report
    _print_report(summary)

    cost = calculate_total_cost(build_cost_metrics(model_name, summary.usage, summary.cache_metrics))
    print("=== Summary ===\n")
    print(f"  Processed:   {summary.processed}")
    print(f"  Succeeded:   {summary.succeeded}")
    print(f"  Failed:      {summary.failed}")
    if summary.failed_keys:
        print(f"  Failed keys: {', '.join(summary.failed_keys)}")
    print(f"  Tokens:      {summary.usage.input_tokens} in / {summary.usage.output_tokens} out")
    print(
        f"  Cache:       {summary.cache_metrics.cache_read_tokens} read / "
        f"{summary.cache_metrics.cache_creation_tokens} written"
    )
    print(f"  Cost:        ${cost:.4f}")
    print()

    # Step 4: Save CSV
    df = summary_to_dataframe(summary)
    df.to_csv(results_path, index=False)

    print("=== Output ===\n")
    print(f"  Results: {results_path}")
    print()

    if summary.failed:
        sys.exit(2)


if __name__ == "__main__":
    main()
