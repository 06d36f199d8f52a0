# src/llmsentinel/cli.py
"""
Command-line interface for the LLM Sentinel analyzer.

Commands:
- ``llmsentinel analyze EVENTS.jsonl``: replay a JSONL file of telemetry
  events through the full pipeline and print a summary.
- ``llmsentinel baselines``: list the endpoint baselines in the durable store.
- ``llmsentinel alerts``: show the most recent entries of the alert log.

Every command accepts ``--config PATH`` and ``--json``.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import SentinelConfig, load_config
from .exceptions import ConfigError, SentinelError
from .logging_config import configure_logging, log_display, set_console_level
from .observability import load_alerts
from .service import SentinelService
from .storage import create_store

logger = logging.getLogger(__name__)


# =============================================================================
# OUTPUT FORMATTING
# =============================================================================


class OutputFormatter:
    """Formats CLI output with optional ANSI colors."""

    COLORS = {
        "green": "\033[92m",
        "red": "\033[91m",
        "yellow": "\033[93m",
        "cyan": "\033[96m",
        "bold": "\033[1m",
        "reset": "\033[0m",
    }

    def __init__(self, use_color: bool = True, json_output: bool = False):
        self.use_color = use_color and sys.stdout.isatty()
        self.json_output = json_output

    def _color(self, text: str, color: str) -> str:
        if not self.use_color:
            return text
        return f"{self.COLORS.get(color, '')}{text}{self.COLORS['reset']}"

    def success(self, text: str) -> str:
        return self._color(text, "green")

    def error(self, text: str) -> str:
        return self._color(text, "red")

    def warning(self, text: str) -> str:
        return self._color(text, "yellow")

    def header(self, text: str) -> str:
        return self._color(text, "bold")


# =============================================================================
# COMMANDS
# =============================================================================


def _load(config_path: Optional[str], formatter: OutputFormatter) -> Optional[SentinelConfig]:
    try:
        return load_config(config_path)
    except ConfigError as e:
        print(formatter.error(str(e)), file=sys.stderr)
        return None


def _read_events(path: Path) -> List[str]:
    with open(path, "r", encoding="utf-8") as f:
        return [line.strip() for line in f if line.strip()]


async def _run_analysis(config: SentinelConfig, lines: List[str], offline: bool) -> Dict[str, Any]:
    service = SentinelService(config, offline=offline)
    await service.start()
    try:
        for line in lines:
            await service.consumer.publish(line)
        await service.consumer.join()
    finally:
        await service.stop()

    analysis = service.cost_optimizer.analyze_costs()
    return {
        "pipeline": service.pipeline.stats.model_dump(),
        "consumer": service.consumer.stats.model_dump(),
        "cost": analysis.model_dump(mode="json"),
        "patterns": service.pattern_detector.get_statistics().model_dump(),
        "baselines": [
            {"endpoint": b.endpoint, "sample_count": b.sample_count, "ready": service.baselines.is_ready(b.endpoint)}
            for b in service.baselines.all_baselines()
        ],
    }


def cmd_analyze(
    events_path: str,
    config_path: Optional[str] = None,
    offline: bool = False,
    formatter: Optional[OutputFormatter] = None,
) -> int:
    """Replay a JSONL event file through the pipeline."""
    formatter = formatter or OutputFormatter()
    config = _load(config_path, formatter)
    if config is None:
        return 1

    path = Path(events_path).expanduser()
    try:
        lines = _read_events(path)
    except OSError as e:
        print(formatter.error(f"Cannot read events file {path}: {e}"), file=sys.stderr)
        return 1

    # Replayed events carry historical timestamps.
    config.patterns.use_event_time = True
    log_display(logger, logging.INFO, f"Replaying {len(lines)} events from {path}")

    try:
        summary = asyncio.run(_run_analysis(config, lines, offline))
    except SentinelError as e:
        print(formatter.error(f"Analysis failed: {e}"), file=sys.stderr)
        return 1

    if formatter.json_output:
        print(json.dumps(summary, indent=2, default=str))
        return 0

    stats = summary["pipeline"]
    print(formatter.header("Analysis Summary"))
    print("=" * 45)
    print(f"Received:          {stats['received']}")
    print(f"Analyzed:          {formatter.success(str(stats['analyzed']))}")
    print(f"Parse errors:      {stats['parse_errors']}")
    print(f"High-risk events:  {stats['high_risk_events']}")
    print(f"Drift anomalies:   {stats['anomalies']}")
    print(f"Pattern alerts:    {stats['pattern_alerts']}")
    print(f"Dead-lettered:     {summary['consumer']['dead_lettered']}")
    print()

    cost = summary["cost"]
    print(formatter.header("Cost"))
    print(f"  Current/month:    ${cost['current_cost']:.2f}")
    print(f"  Projected/month:  ${cost['projected_cost']:.2f}")
    for rec in cost["recommendations"]:
        print(f"  [{formatter.warning(rec['priority'])}] {rec['description']} (saves ${rec['estimated_savings']:.2f}/mo)")
    print()

    print(formatter.header("Baselines"))
    for b in summary["baselines"]:
        state = formatter.success("ready") if b["ready"] else formatter.warning("learning")
        print(f"  {b['endpoint']}: {b['sample_count']} samples ({state})")
    return 0


async def _load_baselines(config: SentinelConfig) -> List[Dict[str, Any]]:
    store = create_store(config.storage)
    await store.initialize(config.storage.model_dump(mode="json"))
    try:
        baselines = await store.load_baselines()
    finally:
        await store.close()
    return [
        {
            "endpoint": b.endpoint,
            "sample_count": b.sample_count,
            "dimension": b.dimension,
            "last_updated": b.last_updated.isoformat(),
        }
        for b in baselines
    ]


def cmd_baselines(config_path: Optional[str] = None, formatter: Optional[OutputFormatter] = None) -> int:
    """List persisted baselines."""
    formatter = formatter or OutputFormatter()
    config = _load(config_path, formatter)
    if config is None:
        return 1

    try:
        rows = asyncio.run(_load_baselines(config))
    except SentinelError as e:
        print(formatter.error(f"Cannot read baselines: {e}"), file=sys.stderr)
        return 1

    if formatter.json_output:
        print(json.dumps(rows, indent=2))
        return 0

    print(formatter.header(f"Baselines ({len(rows)})"))
    print("=" * 45)
    for row in rows:
        print(f"  {row['endpoint']}: {row['sample_count']} samples, dim={row['dimension']}, updated {row['last_updated']}")
    return 0


def cmd_alerts(
    config_path: Optional[str] = None,
    limit: int = 20,
    formatter: Optional[OutputFormatter] = None,
) -> int:
    """Show the newest alerts from the alert log."""
    formatter = formatter or OutputFormatter()
    config = _load(config_path, formatter)
    if config is None:
        return 1

    alerts = load_alerts(Path(config.telemetry.alert_log_path).expanduser())[-limit:]
    if formatter.json_output:
        print(json.dumps([a.model_dump(mode="json") for a in alerts], indent=2))
        return 0

    if not alerts:
        print(formatter.warning("No alerts recorded."))
        return 0
    for alert in alerts:
        title = formatter.error(alert.title) if alert.alert_type.value == "error" else formatter.warning(alert.title)
        print(f"{alert.date_happened.isoformat()}  {title}")
        print(f"    {alert.text}")
    return 0


# =============================================================================
# ENTRY POINT
# =============================================================================


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="llmsentinel",
        description="LLM traffic drift, safety and cost analyzer",
    )
    parser.add_argument("--config", "-c", help="Path to sentinel.toml")
    parser.add_argument("--json", action="store_true", help="Output in JSON format")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show log output on the console")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    analyze_parser = subparsers.add_parser("analyze", help="Replay a JSONL file of telemetry events")
    analyze_parser.add_argument("events", help="Path to the JSONL events file")
    analyze_parser.add_argument(
        "--offline",
        action="store_true",
        help="Use the hashing embedder and keyword heuristics (no API calls)",
    )

    subparsers.add_parser("baselines", help="List persisted endpoint baselines")

    alerts_parser = subparsers.add_parser("alerts", help="Show recent alerts")
    alerts_parser.add_argument("--limit", "-n", type=int, default=20, help="Number of alerts to show")

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point for the analyzer CLI.

    Args:
        args: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code
    """
    parser = create_parser()
    parsed = parser.parse_args(args)

    configure_logging(app_name="llmsentinel", config={"file_enabled": False})
    if parsed.verbose:
        set_console_level(logging.DEBUG)

    formatter = OutputFormatter(use_color=not parsed.no_color, json_output=parsed.json)

    if parsed.command == "analyze":
        return cmd_analyze(
            events_path=parsed.events,
            config_path=parsed.config,
            offline=parsed.offline,
            formatter=formatter,
        )
    elif parsed.command == "baselines":
        return cmd_baselines(config_path=parsed.config, formatter=formatter)
    elif parsed.command == "alerts":
        return cmd_alerts(config_path=parsed.config, limit=parsed.limit, formatter=formatter)
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
