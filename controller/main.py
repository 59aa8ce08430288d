"""reviewload - Controller entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from typing import Optional

import uvicorn

from common.exceptions import ConfigurationError
from common.models.config import RunConfig
from common.models.metrics import RunSummary
from controller.api import create_app
from controller.config import Settings, build_run_config, get_settings
from controller.core.execution_engine import LoadTestEngine
from vuser.core.worker import ClientFactory

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2
EXIT_THRESHOLDS_FAILED = 99


def configure_logging(settings: Settings) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format=settings.log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger().setLevel(settings.log_level.upper())
    # Per-request logs from httpx would drown the progress output
    logging.getLogger("httpx").setLevel(logging.WARNING)


class ControlServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the run."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


def install_signal_handlers(engine: LoadTestEngine) -> None:
    """Stop the run gracefully on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, engine.stop)
        except (NotImplementedError, RuntimeError):
            logger.debug(f"Signal handlers not supported for {sig.name}")


async def execute(
    config: RunConfig,
    settings: Optional[Settings] = None,
    client_factory: Optional[ClientFactory] = None,
    handle_signals: bool = True,
) -> RunSummary:
    """Run one load test, serving the control API alongside it when configured."""
    settings = settings or get_settings()
    engine = LoadTestEngine(config, client_factory=client_factory)

    if handle_signals:
        install_signal_handlers(engine)

    server: Optional[ControlServer] = None
    server_task: Optional[asyncio.Task] = None
    if settings.control_port is not None:
        server = ControlServer(uvicorn.Config(
            create_app(engine),
            host=settings.control_host,
            port=settings.control_port,
            log_level=settings.log_level.lower(),
        ))
        server_task = asyncio.create_task(server.serve())
        logger.info(f"Control API listening on {settings.control_host}:{settings.control_port}")

    try:
        return await engine.run()
    finally:
        if server is not None:
            server.should_exit = True
            await server_task


def run(
    settings: Settings,
    config_file: Optional[str] = None,
    overrides: Optional[dict] = None,
) -> int:
    """Resolve the configuration, run the test and map the verdict to an exit code."""
    try:
        config = build_run_config(settings, config_file, overrides)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    summary = asyncio.run(execute(config, settings))
    return EXIT_OK if summary.passed else EXIT_THRESHOLDS_FAILED


def main():
    """Entry point for running a load test from environment settings."""
    settings = get_settings()
    configure_logging(settings)
    sys.exit(run(settings))


if __name__ == "__main__":
    main()
