# main.py

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from loguru import logger

# Import internal project components
from content_swap.config import (
    build_paths,
    configure_logging,
    load_database_settings,
    load_promote_settings,
    PromoteSettings,
)
from content_swap.core.bootstrap import bootstrap
from content_swap.core.promotion import PromotionPipeline
from content_swap.core.staging_flow import ContentStager
from content_swap.core.swap_groups import ALL_TARGET, SwapGroupName, expand_target, group_for
from content_swap.db.client import PostgresClient
from content_swap.db.lock import AdvisoryLock
from content_swap.db.recorder import DeploymentRecorder
from content_swap.db.staging import PostgresStagingManager
from content_swap.db.staging_loader import StagingRowLoader
from content_swap.db.swapper import BlueGreenSwapper
from content_swap.db.validator_repo import PostgresStagingValidator
from content_swap.errors import ConfigurationError, ContentSwapError, ValidationError

# --- 1. Environment Setup ---
# Load .env from the same folder as main.py for local development
ENV_PATH = Path(__file__).resolve().parent / ".env"

# Allow system environment variables to override .env
load_dotenv(dotenv_path=ENV_PATH, override=False)

# Exit codes
EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2

GROUP_CHOICES = [g.value for g in SwapGroupName]


# --- 2. Dependency Injection Builders ---

def build_pg_client(settings: PromoteSettings | None = None, ensure_schema: bool = True) -> PostgresClient:
    """
    Initialize Postgres client using environment variables.
    Read-only commands pass ensure_schema=False so no DDL is sent.
    """
    try:
        db_settings = load_database_settings()
    except ValueError as e:
        raise ConfigurationError(str(e)) from e
    if db_settings.url:
        logger.info(f"Target DB: DATABASE_URL (schema={db_settings.schema})")
    else:
        logger.info(
            f"Target DB: {db_settings.host}:{db_settings.port}/{db_settings.name} "
            f"(User: {db_settings.user}, schema={db_settings.schema})"
        )
    return PostgresClient.from_settings(db_settings, settings, ensure_schema=ensure_schema)


def load_settings() -> PromoteSettings:
    """Promotion knobs from the environment; bad values are a configuration error."""
    try:
        return load_promote_settings()
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def build_pipeline(pg_client: PostgresClient, settings: PromoteSettings) -> PromotionPipeline:
    """
    Assemble the PromotionPipeline.
    This injects all necessary strategies (Locking, Validating, Swapping, Recording).
    """
    return PromotionPipeline(
        db=pg_client,
        validator=PostgresStagingValidator(pg_client),
        swapper=BlueGreenSwapper(pg_client),
        recorder=DeploymentRecorder(pg_client),
        staging=PostgresStagingManager(pg_client),
        lock=AdvisoryLock(pg_client, timeout_s=settings.lock_timeout_s),
    )


def build_stager(pg_client: PostgresClient, settings: PromoteSettings) -> ContentStager:
    return ContentStager(
        staging=PostgresStagingManager(pg_client),
        loader=StagingRowLoader(pg_client, batch_size=settings.staging_batch_size),
        recorder=DeploymentRecorder(pg_client),
    )


def fail(error: Exception) -> None:
    """Report a failure and exit with the matching code."""
    if isinstance(error, (ConfigurationError, ValidationError)):
        logger.error(f"{type(error).__name__}: {error}")
        sys.exit(EXIT_INVALID)
    if isinstance(error, ContentSwapError):
        logger.error(f"{type(error).__name__}: {error}")
        sys.exit(EXIT_FAILED)
    logger.exception(f"Unexpected failure: {error}")
    sys.exit(EXIT_FAILED)


# --- 3. Main CLI Commands ---

# Configure context to allow wider help text formatting
CONTEXT_SETTINGS = dict(help_option_names=['-h', '--help'], max_content_width=120)


@click.group(context_settings=CONTEXT_SETTINGS)
def cli() -> None:
    """
    CONTENT PROMOTION TOOL

    Blue-green deployment of catalog content (patterns, rules, tour).
    Loaders fill <table>_staging; this tool promotes staging to live.

    \b
    KEY FEATURES:
    - Validation: refuses missing or empty staging tables.
    - Atomic Swaps: all renames, triggers and constraints in one transaction.
    - Audit Trail: every promotion is recorded in content_deployments.

    \b
    USAGE EXAMPLES:
    1. Check staging without touching live tables:
       $ python main.py promote tour --dry-run

    2. Promote everything:
       $ python main.py promote all
    """
    # Setup logging configuration on CLI start
    paths = build_paths()
    configure_logging(paths)


@cli.command("promote", help="Promote staging tables to live for one group or all of them.")
@click.argument("target", type=click.Choice(GROUP_CHOICES + [ALL_TARGET]))
@click.option("--dry-run", is_flag=True, default=False,
              help="Validate staging tables only; no DDL is issued.")
@click.option("--keep-retired", is_flag=True, default=False,
              help="Keep <table>_retired instead of dropping it after the swap.")
def promote_cmd(target: str, dry_run: bool, keep_retired: bool) -> None:
    """
    Validates, swaps, records and recreates staging for each selected group.
    Stops at the first failing group.
    """
    logger.info("-" * 50)
    logger.info(f"PROMOTE : {target}")
    logger.info(f"Dry run : {dry_run}")
    logger.info(f"Retired : {'keep' if keep_retired else 'drop'}")
    logger.info("-" * 50)

    try:
        groups = expand_target(target)
        settings = load_settings()
        pg_client = build_pg_client(settings, ensure_schema=not dry_run)
        pipeline = build_pipeline(pg_client, settings)

        for group in groups:
            logger.info(f"--- Promoting: {group.label} ---")
            try:
                result = pipeline.promote(group, dry_run=dry_run, keep_retired=keep_retired)
            except ContentSwapError as error:
                error.group = error.group or group.label
                logger.error(f"Promotion of '{group.label}' failed")
                raise
            for table, count in result.counts.items():
                logger.info(f"  {table}: {count} rows")

        logger.success("Done!")

    except Exception as error:
        fail(error)


@cli.command("stage", help="Load a JSON payload ({table: [rows]}) into a group's staging tables.")
@click.argument("group_name", type=click.Choice(GROUP_CHOICES))
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def stage_cmd(group_name: str, payload_file: Path) -> None:
    """
    Clears the staging tables, loads every table of the group and records
    a `staged` deployment. Live tables are not touched.
    """
    try:
        group = group_for(group_name)
        try:
            payload = json.loads(payload_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"{payload_file} is not valid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise ConfigurationError(f"{payload_file} must hold an object of table -> rows")

        settings = load_settings()
        pg_client = build_pg_client(settings)
        try:
            build_stager(pg_client, settings).stage(group, payload, {"source": payload_file.name})
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
    except Exception as error:
        fail(error)


@cli.command("recreate-staging", help="Drop and recreate empty staging tables from the live schema.")
@click.argument("group_name", type=click.Choice(GROUP_CHOICES))
def recreate_staging_cmd(group_name: str) -> None:
    try:
        group = group_for(group_name)
        pg_client = build_pg_client()
        PostgresStagingManager(pg_client).recreate_staging(group)
    except Exception as error:
        fail(error)


@cli.command("drop-retired", help="Drop retired tables kept by an earlier --keep-retired promotion.")
@click.argument("group_name", type=click.Choice(GROUP_CHOICES))
def drop_retired_cmd(group_name: str) -> None:
    try:
        group = group_for(group_name)
        pg_client = build_pg_client()
        PostgresStagingManager(pg_client).drop_retired(group)
    except Exception as error:
        fail(error)


@cli.command("history", help="Show the deployment audit trail of a group.")
@click.argument("group_name", type=click.Choice(GROUP_CHOICES))
@click.option("--limit", type=click.IntRange(min=1), default=20, show_default=True)
def history_cmd(group_name: str, limit: int) -> None:
    try:
        group = group_for(group_name)
        pg_client = build_pg_client(ensure_schema=False)
        records = DeploymentRecorder(pg_client).history(group, limit=limit)
    except Exception as error:
        fail(error)
        return

    if not records:
        click.echo(f"No deployments recorded for {group_name}.")
        return
    for r in records:
        when = r["promoted_at"] or r["staged_at"]
        click.echo(f"{when}  {r['status']:<8} rows={r['row_count']}  id={r['id']}")


@cli.command("bootstrap", help="Create the deployment table, lock triggers and missing staging tables.")
def bootstrap_cmd() -> None:
    try:
        pg_client = build_pg_client()
        bootstrap(
            pg_client,
            swapper=BlueGreenSwapper(pg_client),
            recorder=DeploymentRecorder(pg_client),
            staging=PostgresStagingManager(pg_client),
            groups=expand_target(ALL_TARGET),
        )
        logger.success("Bootstrap complete")
    except Exception as error:
        fail(error)


if __name__ == "__main__":
    cli()
