"""Command-line entry point.

Runs the detectors over JSON exports produced by the ingestion side:

    python -m polymarket_wallet_detector baseline markets.json
    python -m polymarket_wallet_detector funding wallets.json
    python -m polymarket_wallet_detector cluster wallets.json

``markets.json`` holds ``{"markets": [{"market_id": ..., "samples": [...]}]}``;
``wallets.json`` holds ``{"wallets": [{"address": ..., "deposits": [...],
"trades": [...]}]}``.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from polymarket_wallet_detector.config import get_settings
from polymarket_wallet_detector.engine import DetectionEngine
from polymarket_wallet_detector.ingestor.models import MarketInfo, VolumeSample, WalletRecord

logger = logging.getLogger(__name__)


def _load(path: Path) -> dict[str, Any]:
    with path.open(encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object at the top level")
    return data


def _load_wallets(path: Path, default_decimals: int) -> list[WalletRecord]:
    return [
        WalletRecord.from_dict(w, default_decimals=default_decimals)
        for w in _load(path).get("wallets", [])
    ]


async def _run_baseline(engine: DetectionEngine, path: Path, top_n: int | None) -> dict[str, Any]:
    markets = _load(path).get("markets", [])
    samples = {
        str(m["market_id"]): [VolumeSample.from_dict(s) for s in m.get("samples", [])]
        for m in markets
    }
    info = {str(m["market_id"]): MarketInfo.from_dict(m) for m in markets}
    batch = await engine.calculate_baselines(samples, markets=info)
    summary = engine.volume_calculator.get_summary(list(batch.results.values()), top_n=top_n)
    return {
        "baselines": {k: v.to_dict() for k, v in batch.results.items()},
        "errors": batch.errors,
        "summary": summary.to_dict(),
    }


async def _run_funding(engine: DetectionEngine, path: Path, decimals: int) -> dict[str, Any]:
    batch = await engine.analyze_funding_patterns(_load_wallets(path, decimals))
    summary = engine.funding_analyzer.get_summary(batch)
    return {
        "results": {k: v.to_dict() for k, v in batch.results.items()},
        "errors": batch.errors,
        "summary": summary.to_dict(),
    }


async def _run_cluster(engine: DetectionEngine, path: Path, decimals: int) -> dict[str, Any]:
    analysis = await engine.analyze_cohort(_load_wallets(path, decimals))
    payload = analysis.clustering.to_dict()
    payload["summary"] = engine.cluster_analyzer.get_summary(analysis.clustering).to_dict()
    payload["funding_summary"] = engine.funding_analyzer.get_summary(analysis.funding).to_dict()
    return payload


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="polymarket_wallet_detector",
        description="Score market volume baselines, wallet funding patterns and wallet clusters.",
    )
    parser.add_argument("command", choices=("baseline", "funding", "cluster"))
    parser.add_argument("input", type=Path, help="JSON input file")
    parser.add_argument("--top-n", type=int, default=None, help="Markets listed in baseline summary")
    parser.add_argument("--indent", type=int, default=2)
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logger.debug("Settings: %s", settings.redacted_summary())

    engine = DetectionEngine.from_settings(settings)
    decimals = settings.funding_pattern.token_decimals
    try:
        if args.command == "baseline":
            output = asyncio.run(_run_baseline(engine, args.input, args.top_n))
        elif args.command == "funding":
            output = asyncio.run(_run_funding(engine, args.input, decimals))
        else:
            output = asyncio.run(_run_cluster(engine, args.input, decimals))
    except (OSError, ValueError, KeyError) as e:
        logger.error("Failed to process %s: %s", args.input, e)
        return 1

    json.dump(output, sys.stdout, indent=args.indent, default=str)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
