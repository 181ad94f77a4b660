"""
Command-line interface for the software catalog.

Provides commands to import reference data, run an enrichment sweep,
and inspect the catalog and configuration.
"""

import asyncio
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, Field

from software_catalog.catalog.manager import CatalogManager
from software_catalog.catalog.store import CatalogStore
from software_catalog.config import get_settings
from software_catalog.enrichment.orchestrator import EnrichmentOrchestrator, EnrichmentProgress
from software_catalog.importer.csv_import import DEFAULT_MAX_STEAM_GAMES, CatalogImporter
from software_catalog.logger import setup_logging
from software_catalog.providers.registry import create_default_registry

DEFAULT_INPUT_DIR = "_software_list"

logger = structlog.get_logger(__name__)


class CLIOutput(BaseModel):
    """Structured output for CLI commands."""

    success: bool
    command: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: dict[str, Any] | list[Any] | None = None
    error: str | None = None


def print_json(output: CLIOutput) -> None:
    """Print output as formatted JSON."""
    print(json.dumps(output.model_dump(), indent=2, default=str))


def _option(args: list[str], flag: str) -> str | None:
    """Value following flag in args, removing both; None when absent."""
    if flag not in args:
        return None
    idx = args.index(flag)
    if idx + 1 >= len(args):
        raise ValueError(f"{flag} requires a value")
    value = args[idx + 1]
    del args[idx : idx + 2]
    return value


def cmd_import(args: list[str]) -> int:
    """
    Import Software.csv and steam.csv.

    Args: [input_dir] [database_path] [max_steam_games]
    """
    settings = get_settings()
    input_dir = Path(args[0]) if len(args) > 0 else Path(DEFAULT_INPUT_DIR)
    database_path = Path(args[1]) if len(args) > 1 else settings.catalog.database_path
    max_games = int(args[2]) if len(args) > 2 else DEFAULT_MAX_STEAM_GAMES

    if not input_dir.is_dir():
        print_json(
            CLIOutput(
                success=False,
                command="import",
                error=f"Input directory not found: {input_dir}",
            )
        )
        return 1

    store = CatalogStore.open(database_path, echo=settings.catalog.echo_sql)
    try:
        results = CatalogImporter(store).import_all(input_dir, max_steam_games=max_games)
        version = store.current_version()
    finally:
        store.close()

    success = bool(results) and all(r.success for r in results)
    print_json(
        CLIOutput(
            success=success,
            command="import",
            data={
                "database": str(database_path),
                "catalog_version": version,
                "files": [
                    {
                        "source": r.source,
                        "success": r.success,
                        "imported": r.imported_count,
                        "skipped": r.skipped_count,
                        "error": r.error_message,
                    }
                    for r in results
                ],
            },
            error=None if results else f"No Software.csv or steam.csv in {input_dir}",
        )
    )
    return 0 if success else 1


async def cmd_enrich(args: list[str]) -> int:
    """
    Run one enrichment sweep.

    Options: --limit N, --max-age DAYS, --force
    """
    settings = get_settings()
    force = "--force" in args
    limit_value = _option(args, "--limit")
    max_age_value = _option(args, "--max-age")
    limit = int(limit_value) if limit_value else settings.enrichment.sweep_limit
    max_age = int(max_age_value) if max_age_value else settings.enrichment.max_age_days

    store = CatalogStore.open(settings.catalog.database_path, echo=settings.catalog.echo_sql)
    registry = create_default_registry(settings)
    orchestrator = EnrichmentOrchestrator(store, registry, settings=settings)

    stats = orchestrator.get_provider_statistics()
    print("Software Catalog - Enrichment")
    print(f"{'=' * 50}")
    print(f"  Game providers: {stats.available_game_providers}/{stats.total_game_providers}")
    print(f"  Software providers: {stats.available_software_providers}/{stats.total_software_providers}")
    print(f"  Limit: {limit}  Max age: {max_age} days  Force: {force}")
    print(f"{'=' * 50}\n")

    def on_progress(progress: EnrichmentProgress) -> None:
        width = 30
        done = round(width * progress.percentage / 100)
        print(
            f"\r  {'#' * done}{'.' * (width - done)} {progress.completed}/{progress.total}"
            f"  enriched={progress.enriched} failed={progress.failed}   ",
            end="",
            flush=True,
        )

    try:
        result = await orchestrator.run_sweep(
            max_age_days=max_age, limit=limit, on_progress=on_progress, force=force
        )
    finally:
        await registry.close()
        store.close()

    print(f"\n\nSweep {result.run_id} finished in {result.duration_seconds:.1f}s")
    print(f"  Enriched {result.enriched} of {result.total} ({result.success_rate:.0f}%)")
    for provider, wins in sorted(result.provider_wins.items()):
        print(f"    {provider}: {wins}")

    if result.errors:
        print(f"\n{len(result.errors)} entries failed:")
        for err in result.errors[:5]:
            print(f"    {err['name']}: {str(err['error'])[:60]}")

    return 0 if not result.errors else 1


def cmd_stats() -> int:
    """Print catalog statistics."""
    settings = get_settings()
    store = CatalogStore.open(settings.catalog.database_path)
    try:
        entries = store.get_all_entries()
        version = store.current_version()
    finally:
        store.close()

    manager = CatalogManager(
        cooldown_hours=settings.enrichment.cooldown_hours,
        max_age_days=settings.enrichment.max_age_days,
    )
    due = manager.select_for_enrichment(entries)
    print_json(
        CLIOutput(
            success=True,
            command="stats",
            data={
                "catalog_version": version,
                "catalog": manager.get_catalog_stats(entries),
                "due_for_enrichment": len(due),
                "estimate": manager.estimate_enrichment_time(
                    len(due), max_concurrency=settings.enrichment.max_concurrency
                ),
            },
        )
    )
    return 0


def cmd_test_config() -> int:
    """Test configuration loading."""
    settings = get_settings()

    print_json(
        CLIOutput(
            success=True,
            command="test-config",
            data={
                "environment": settings.environment,
                "database_path": str(settings.catalog.database_path),
                "rawg_api_key_configured": settings.rawg.is_configured,
                "rawg_base_url": settings.rawg.base_url,
                "rawg_requests_per_minute": settings.rawg.requests_per_minute,
                "provider_timeout_seconds": settings.providers.timeout_seconds,
                "winget_executable": settings.providers.winget_executable,
                "enrichment_cooldown_hours": settings.enrichment.cooldown_hours,
                "enrichment_max_concurrency": settings.enrichment.max_concurrency,
            },
        )
    )
    return 0


def print_usage() -> None:
    """Print CLI usage information."""
    usage = f"""
Software Catalog CLI
====================

Usage: software-catalog <command> [arguments]

Commands:
  test-config                                   Test configuration loading
  import [input_dir] [db_path] [max_games]      Import Software.csv and steam.csv
                                                (defaults: {DEFAULT_INPUT_DIR}, CATALOG_DATABASE_PATH, {DEFAULT_MAX_STEAM_GAMES})
  enrich [--limit N] [--max-age DAYS] [--force] Enrich entries due for metadata
  stats                                         Catalog statistics

Examples:
  software-catalog import ./_software_list master_catalog.db 5000
  software-catalog enrich --limit 50
"""
    print(usage)


def run(argv: list[str]) -> int:
    """Dispatch a command; returns the process exit code."""
    if not argv:
        print_usage()
        return 1

    command, args = argv[0], list(argv[1:])

    try:
        if command == "test-config":
            return cmd_test_config()
        if command in ("import", "import-catalog"):
            return cmd_import(args)
        if command == "enrich":
            return asyncio.run(cmd_enrich(args))
        if command == "stats":
            return cmd_stats()
        if command in ("help", "--help", "-h"):
            print_usage()
            return 0

        print(f"Unknown command: {command}")
        print_usage()
        return 1

    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
    except Exception as e:
        logger.exception("CLI error", error=str(e))
        print_json(CLIOutput(success=False, command=command, error=str(e)))
        return 1


def main() -> None:
    """Main CLI entry point."""
    setup_logging()
    sys.exit(run(sys.argv[1:]))


if __name__ == "__main__":
    main()
