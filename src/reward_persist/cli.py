"""reward_persist.cli

Command line entry point.

  reward-persist --mode import --file-type mobile_reward_share \\
      --db-dsn postgresql://... --gcs-bucket rewards \\
      --after 2024-06-01T00:00:00 --before 2024-06-02T00:00:00

Settings come from an optional YAML file (--config); CLI flags override it.
Exit status is 1 on any fatal error (bad flags, bad settings, provisioning
failure, or a failed file).
"""

from __future__ import annotations

import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path

import click
import psycopg

from reward_persist.file_store import GcsFileStore, LocalFileStore
from reward_persist.file_types import FileType, handler_for
from reward_persist.importer import run_clean, run_import
from reward_persist.settings import SettingsValidationError, load_settings
from reward_persist.shared import (
    FileImportError,
    ProvisioningError,
    RunCounters,
    write_run_report,
)

_TIME_FORMATS = ["%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d"]


def _utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@click.command()
@click.option(
    "--mode",
    type=click.Choice(["import", "clean"]),
    default="import",
    show_default=True,
    help="Run mode",
)
@click.option(
    "--file-type",
    type=click.Choice([ft.value for ft in FileType]),
    default=FileType.MOBILE_REWARD_SHARE.value,
    show_default=True,
    help="Reward file type to import",
)
@click.option("--db-dsn", required=True, envvar="DATABASE_URL", help="PostgreSQL DSN")
@click.option("--gcs-bucket", default=None, help="GCS bucket holding the reward files")
@click.option("--local-dir", default=None, type=click.Path(), help="Read reward files from a local directory instead of GCS")
@click.option("--after", default=None, type=click.DateTime(_TIME_FORMATS), help="Only files strictly after this UTC time")
@click.option("--before", default=None, type=click.DateTime(_TIME_FORMATS), help="Only files strictly before this UTC time")
@click.option("--config", "config_path", default=None, type=click.Path(), help="YAML settings file")
@click.option("--max-bind-params", default=None, type=int, help="Bound parameters per statement (overrides config)")
@click.option("--dry-run", is_flag=True, default=False, help="Execute every statement, then roll back")
@click.option("--run-id", default=None, help="Run identifier (default: random UUID)")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
)
def main(
    mode: str,
    file_type: str,
    db_dsn: str,
    gcs_bucket: str | None,
    local_dir: str | None,
    after: datetime | None,
    before: datetime | None,
    config_path: str | None,
    max_bind_params: int | None,
    dry_run: bool,
    run_id: str | None,
    log_level: str,
) -> None:
    """Persist Helium reward files into PostgreSQL."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()
    counters = RunCounters()

    click.echo(f"[{run_id}] Starting {mode} run file_type={file_type} (dry_run={dry_run})")

    try:
        settings = load_settings(Path(config_path) if config_path else None)
        settings = settings.with_overrides(max_bind_params=max_bind_params)
    except (SettingsValidationError, FileNotFoundError) as exc:
        click.echo(f"[{run_id}] FATAL: invalid settings: {exc}", err=True)
        sys.exit(1)

    if mode == "clean":
        conn = psycopg.connect(db_dsn, autocommit=False)
        try:
            run_clean(conn, file_type, run_id=run_id, dry_run=dry_run)
        finally:
            conn.close()
        click.echo(f"[{run_id}] Clean: nothing to do for {handler_for(file_type).prefix}")
        return

    if local_dir and gcs_bucket:
        click.echo(f"[{run_id}] ERROR: --local-dir and --gcs-bucket are mutually exclusive.", err=True)
        sys.exit(1)
    if local_dir:
        store = LocalFileStore(base_dir=Path(local_dir))
    elif gcs_bucket:
        store = GcsFileStore(bucket_name=gcs_bucket)
    else:
        click.echo(f"[{run_id}] ERROR: provide --gcs-bucket or --local-dir.", err=True)
        sys.exit(1)

    after, before = _utc(after), _utc(before)
    if after is not None and before is not None and after >= before:
        click.echo(f"[{run_id}] ERROR: --after must be earlier than --before.", err=True)
        sys.exit(1)

    failure: Exception | None = None
    conn = psycopg.connect(db_dsn, autocommit=False)
    try:
        run_import(
            conn, store, file_type,
            after=after, before=before,
            settings=settings, counters=counters,
            run_id=run_id, dry_run=dry_run,
        )
    except (ProvisioningError, FileImportError) as exc:
        failure = exc
    finally:
        conn.close()

    click.echo(
        f"[{run_id}] files={counters.files_processed}/{counters.files_listed} "
        f"records={counters.records_decoded} dropped={counters.records_dropped} "
        f"statements={counters.statements_executed}"
    )
    for table, rows in sorted(counters.rows_inserted.items()):
        click.echo(f"[{run_id}]   {table}: {rows}")
    if dry_run:
        click.echo(f"[{run_id}] DRY RUN — all batches rolled back.")

    if settings.write_report:
        report_path = write_run_report(
            run_id, started_at, mode, dry_run, settings.report_dir,
            {
                "file_type": file_type,
                "after": after.isoformat() if after else None,
                "before": before.isoformat() if before else None,
                **store.describe(),
            },
            counters,
        )
        click.echo(f"[{run_id}] Run report: {report_path}")

    if failure is not None:
        click.echo(f"[{run_id}] FATAL: {failure}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
