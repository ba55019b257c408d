import asyncio
import logging
import sys
from dataclasses import dataclass

from fastapi import FastAPI
from uvicorn.config import Config
from uvicorn.server import Server

from . import __version__
from .config import Settings, load_board_config
from .errors import ConfigError, DurableLogError
from .routers import public
from .schemas import BoardConfig
from .services.aggregator import Aggregator
from .services.datalog import DurableLog
from .services.probe import ProbeRunner, RetryingProber
from .services.render import IndexRenderer
from .services.scheduler import ProbeScheduler
from .services.series import Series
from .services.warmstart import load_history

logger = logging.getLogger(__name__)


def create_app(renderer: IndexRenderer, names, title: str = "latencyboard") -> FastAPI:
    app = FastAPI(title=title, version=__version__)
    app.state.renderer = renderer
    app.state.names = tuple(names)
    app.include_router(public.router)
    return app


@dataclass
class Board:
    cfg: BoardConfig
    queue: asyncio.Queue
    aggregator: Aggregator
    scheduler: ProbeScheduler
    app: FastAPI


def build(settings: Settings, cfg: BoardConfig) -> Board:
    """Wire the components and warm the series from disk."""
    base_dir = settings.BASE_DIR
    series = Series(cfg.oldest_history)
    load_history(base_dir, cfg.names, series)

    renderer = IndexRenderer(base_dir, cfg.slow_threshold)
    queue: asyncio.Queue = asyncio.Queue()
    aggregator = Aggregator(cfg.names, series, DurableLog(base_dir), renderer)
    prober = RetryingProber(ProbeRunner(settings.CHECK_URL))
    scheduler = ProbeScheduler(cfg.sites, prober, queue)
    app = create_app(renderer, cfg.names, title=settings.APP_TITLE)
    return Board(cfg, queue, aggregator, scheduler, app)


async def serve(board: Board) -> None:
    host, port = board.cfg.listen
    server = Server(Config(app=board.app, host=host, port=port, log_config=None))

    aggregator_task = asyncio.create_task(board.aggregator.run(board.queue), name="aggregator")
    scheduler_task = asyncio.create_task(board.scheduler.run(), name="scheduler")
    server_task = asyncio.create_task(server.serve(), name="http")
    logger.info("listen on %s:%d", host, port)

    try:
        await asyncio.wait({aggregator_task, server_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        server.should_exit = True
        for task in (scheduler_task, aggregator_task):
            if not task.done():
                task.cancel()
        await asyncio.gather(scheduler_task, server_task, aggregator_task, return_exceptions=True)

    if not aggregator_task.cancelled() and aggregator_task.exception() is not None:
        raise aggregator_task.exception()


def run() -> None:
    settings = Settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        cfg = load_board_config(settings.config_path)
    except ConfigError as e:
        logger.critical("%s", e)
        sys.exit(1)
    logger.info("base dir: %s", settings.BASE_DIR)
    logger.info("oldest history in minutes: %d", cfg.oldest_history)

    board = build(settings, cfg)
    try:
        asyncio.run(serve(board))
    except DurableLogError as e:
        logger.critical("cannot persist results, stopping: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    run()
