import asyncio
from pathlib import Path

import uvicorn
from dotenv import find_dotenv, load_dotenv
from loguru import logger

from taskpulse.logging_setup import setup_logging


def _load_env() -> None:
    env_path = find_dotenv(usecwd=True)
    if not env_path:
        candidate = Path(__file__).resolve().parents[1] / ".env"
        if candidate.exists():
            env_path = str(candidate)
    if env_path:
        logger.info("Loaded .env from {}", env_path)
        load_dotenv(env_path, override=True)
    else:
        logger.warning("No .env found")


def _run_migrations() -> None:
    from alembic import command
    from alembic.config import Config

    from taskpulse.config import settings
    from taskpulse.db.session import build_database_url

    Path(settings.sqlite_path).resolve().parent.mkdir(parents=True, exist_ok=True)
    config_path = Path(__file__).resolve().parents[1] / "alembic.ini"
    alembic_cfg = Config(str(config_path))
    alembic_cfg.set_main_option("sqlalchemy.url", build_database_url())
    command.upgrade(alembic_cfg, "head")


async def _serve() -> None:
    from aiogram import Bot

    from taskpulse.api.app import app
    from taskpulse.board.planka_client import PlankaClient
    from taskpulse.config import settings
    from taskpulse.db.session import get_session
    from taskpulse.jobs.registry import build_jobs
    from taskpulse.jobs.scheduler import JobScheduler
    from taskpulse.notify.telegram_notifier import TelegramNotifier

    bot = Bot(token=settings.telegram_bot_token)
    notifier = TelegramNotifier(bot)
    scheduler = JobScheduler(build_jobs(notifier, session_factory=get_session))

    app.state.scheduler = scheduler
    app.state.board = PlankaClient()
    app.state.session_factory = get_session

    config = uvicorn.Config(app, host=settings.api_host, port=settings.api_port, reload=False)
    server = uvicorn.Server(config)

    scheduler.start()
    try:
        await server.serve()
    finally:
        scheduler.stop()
        await bot.session.close()
        logger.info("taskpulse stopped")


def main() -> None:
    _load_env()
    setup_logging()

    from taskpulse.config import settings

    if not settings.telegram_bot_token:
        logger.error("TELEGRAM_BOT_TOKEN is not set")
        raise SystemExit(1)

    _run_migrations()
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        return


if __name__ == "__main__":
    main()
