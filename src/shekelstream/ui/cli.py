from __future__ import annotations

from dotenv import load_dotenv
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
import typer

from shekelstream.adapters.clients.scraper import SubprocessScraperClient
from shekelstream.adapters.db.facade import DB
from shekelstream.core.config import AppConfig, ConfigError, load_app_config_from_env
from shekelstream.core.logging import configure_logging
from shekelstream.core.tasks import SyncTask, build_sync_tasks
from shekelstream.jobs.sync.runner import TaskOutcome, run_sync_tasks
from shekelstream.jobs.sync.scheduler import SyncScheduler
from shekelstream.tools.notify.notifier_tool import Notifier
from shekelstream.tools.sync.sync_tool import SyncTool
from shekelstream.tools.translate.translator_tool import TranslationCache

# Load environment variables from .env
load_dotenv()

app = typer.Typer(
    help=(
        "Shekel Streamer: bank transaction sync and Telegram notifications. "
        "Syncing requires SCRAPER_COMMAND, the scraper bridge to run."
    ),
    no_args_is_help=True,
)


def _load_config() -> AppConfig:
    try:
        config = load_app_config_from_env()
    except ConfigError as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(1) from None
    configure_logging(config)
    return config


def _load_tasks(config: AppConfig) -> list[SyncTask]:
    try:
        return build_sync_tasks(strict=config.strict_companies)
    except ConfigError as e:
        logger.error("Invalid task configuration: {}", e)
        raise typer.Exit(1) from None


def _check_db(db: DB) -> None:
    try:
        db.ping()
    except SQLAlchemyError as e:
        logger.opt(exception=e).error("Failed to connect to the database: {}", e)
        raise typer.Exit(1) from None
    logger.info("Connected to the database")


SCRAPER_BRIDGE_HELP = (
    "SCRAPER_COMMAND is not set. Point it at a bridge that reads one JSON "
    "request {companyId, credentials, startDate, combineInstallments, timeout, "
    "executablePath?} on stdin and writes one JSON result {success, accounts: "
    "[{accountNumber, txns}]} or {success: false, errorType, errorMessage} to "
    "stdout, e.g. SCRAPER_COMMAND=\"node scraper/index.mjs\"."
)


def _require_scraper_command(config: AppConfig) -> None:
    if not config.scraper_command:
        logger.error("{}", SCRAPER_BRIDGE_HELP)
        typer.echo(SCRAPER_BRIDGE_HELP, err=True)
        raise typer.Exit(1)


def build_sync_tool(config: AppConfig, db: DB) -> SyncTool:
    """Wire the sync pipeline from configuration."""
    assert config.scraper_command is not None
    scraper = SubprocessScraperClient(
        config.scraper_command,
        browser_executable_path=config.browser_executable_path,
    )
    return SyncTool(
        db,
        scraper,
        TranslationCache.from_config(db, config),
        Notifier.from_config(config),
        sync_days_count=config.sync_days_count,
        chunk_size=config.translation_chunk_size,
    )


def _run_all(tasks: list[SyncTask], sync_tool: SyncTool) -> list[TaskOutcome]:
    logger.bind(tasks=len(tasks)).info("Starting sync of {} tasks", len(tasks))
    outcomes = run_sync_tasks(tasks, sync_tool)
    failed = sum(1 for outcome in outcomes if not outcome.success)
    logger.bind(tasks=len(tasks), failed=failed).info(
        "Sync run finished ({} failed)", failed
    )
    return outcomes


@app.command("start")
def start() -> None:
    """Check the database, then sync on startup and/or on the configured schedule."""
    config = _load_config()
    if not config.translation_enabled:
        logger.info("Translation is disabled")

    db = DB(config.database_url)
    _check_db(db)
    db.create_tables()

    tasks = _load_tasks(config)
    if not tasks:
        logger.info("No tasks configured, exiting")
        raise typer.Exit(0)

    _require_scraper_command(config)
    sync_tool = build_sync_tool(config, db)
    if config.sync_on_startup:
        _run_all(tasks, sync_tool)

    if not config.is_scheduled:
        logger.info("Scheduled sync is disabled, exiting")
        raise typer.Exit(0)

    assert config.sync_schedule is not None
    scheduler = SyncScheduler(
        config.sync_schedule,
        lambda: _run_all(tasks, sync_tool),
        timezone=config.default_timezone,
    )
    scheduler.start()


@app.command("sync")
def sync() -> None:
    """Run one sync pass over all configured tasks now."""
    config = _load_config()
    db = DB(config.database_url)
    _check_db(db)
    db.create_tables()

    tasks = _load_tasks(config)
    if not tasks:
        typer.echo("No tasks configured.")
        return

    _require_scraper_command(config)
    outcomes = _run_all(tasks, build_sync_tool(config, db))
    for outcome in outcomes:
        label = f"{outcome.task.user}/{outcome.task.company.value}"
        if outcome.summary is None:
            typer.echo(f"  {label}: error: {outcome.error}")
        else:
            summary = outcome.summary
            typer.echo(
                f"  {label}: {summary.status.value} "
                f"({summary.new} new, {summary.updated} updated)"
            )
    if any(not outcome.success for outcome in outcomes):
        raise typer.Exit(1)


@app.command("init-db")
def init_db(url: str | None = None) -> None:
    """Create the transactions and translations tables."""
    config = _load_config()
    db = DB(url or config.database_url)
    db.create_tables()
    typer.echo("Database tables created.")


@app.command("check-db")
def check_db() -> None:
    """Verify the database is reachable."""
    config = _load_config()
    db = DB(config.database_url)
    _check_db(db)
    typer.echo("Database OK.")


@app.command("tasks")
def list_tasks() -> None:
    """List the sync tasks derived from the environment."""
    config = _load_config()
    tasks = _load_tasks(config)
    if not tasks:
        typer.echo("No tasks configured.")
        return
    for task in tasks:
        fields = ", ".join(sorted(task.credentials)) or "none"
        typer.echo(
            f"  {task.user}/{task.company.value} "
            f"(credentials: {fields}; chat: {task.chat_id or 'none'})"
        )


def main() -> None:
    app()
