"""Application entry point for chatrelay."""

import argparse
import asyncio
import signal
import sys
from pathlib import Path

import aiohttp
from pydantic import ValidationError
from structlog.stdlib import BoundLogger

from chatrelay.application.services.ai_orchestrator import AIOrchestrator
from chatrelay.application.services.message_processor import MessageProcessor
from chatrelay.config import (
    ConfigError,
    ConfigFileNotFoundError,
    load_config,
    parse_cli_args,
)
from chatrelay.domain.entities.job import PROCESS_MESSAGE_JOB, Job
from chatrelay.infrastructure.job_queue import JobQueue
from chatrelay.infrastructure.llm import create_provider
from chatrelay.infrastructure.logging import get_logger, setup_logging
from chatrelay.infrastructure.persistence import (
    Database,
    SqlConversationRepository,
    SqlJobRepository,
)
from chatrelay.infrastructure.platforms import PlatformDispatcher
from chatrelay.infrastructure.security import SignatureVerifier
from chatrelay.presentation.http.server import HTTPServer

# Shutdown timeout in seconds
SHUTDOWN_TIMEOUT = 30


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Command line arguments. If None, uses sys.argv.

    Returns:
        Parsed arguments namespace.
    """
    return parse_cli_args(args)


def register_job_logging(job_queue: JobQueue, logger: BoundLogger) -> None:
    """Log queue lifecycle events.

    Args:
        job_queue: Queue to observe.
        logger: Logger instance.
    """

    def on_active(job: Job) -> None:
        logger.debug("Job started", job_id=job.id, attempt=job.attempts_made + 1)

    def on_completed(job: Job, result: object) -> None:
        logger.info("Job completed", job_id=job.id, attempts=job.attempts_made)

    def on_failed(job: Job, error: BaseException) -> None:
        logger.warning(
            "Job failed",
            job_id=job.id,
            attempts=job.attempts_made,
            status=job.status.value,
            error=str(error),
        )

    def on_stalled(job: Job) -> None:
        logger.warning("Job stalled", job_id=job.id, progress=job.progress)

    job_queue.on("active", on_active)
    job_queue.on("completed", on_completed)
    job_queue.on("failed", on_failed)
    job_queue.on("stalled", on_stalled)


async def main_async(
    config_path: Path,
    shutdown_timeout: float = SHUTDOWN_TIMEOUT,
) -> int:
    """Async main function.

    Args:
        config_path: Path to configuration file.
        shutdown_timeout: Maximum time in seconds to wait for graceful shutdown.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    # 1. Load configuration
    config = load_config(config_path)

    # 2. Initialize logging
    setup_logging(config.logging)
    logger = get_logger(__name__)
    logger.info("Starting chatrelay", config_path=str(config_path))

    # 3. Initialize storage
    database = Database(config.database.url)
    await database.initialize()
    repository = SqlConversationRepository(database)

    # 4. Initialize components
    primary = create_provider(
        config.ai.primary, logger=get_logger("ai", role="primary")
    )
    fallback = None
    if config.ai.fallback is not None:
        fallback = create_provider(
            config.ai.fallback, logger=get_logger("ai", role="fallback")
        )
    orchestrator = AIOrchestrator(
        primary=primary,
        fallback=fallback,
        system_prompt=config.ai.system_prompt,
        logger=get_logger("ai"),
    )

    session = aiohttp.ClientSession()
    dispatcher = PlatformDispatcher(
        session=session,
        telegram=config.telegram,
        slack=config.slack,
        logger=get_logger("dispatcher"),
    )
    processor = MessageProcessor(
        repository=repository,
        orchestrator=orchestrator,
        sender=dispatcher,
        config=config.processor,
        logger=get_logger("processor"),
    )

    job_queue = JobQueue(
        config.queue,
        logger=get_logger("job_queue"),
        repository=SqlJobRepository(database),
    )
    register_job_logging(job_queue, get_logger("jobs"))
    job_queue.register(PROCESS_MESSAGE_JOB, processor.process)

    http_server = HTTPServer(
        config=config.server,
        job_queue=job_queue,
        verifier=SignatureVerifier(
            config.telegram, config.slack, logger=get_logger("webhook_auth")
        ),
        orchestrator=orchestrator,
        logger=get_logger("http_server"),
        configured_platforms=dispatcher.configured_platforms(),
    )

    # 5. Setup shutdown handling
    shutdown_event = asyncio.Event()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("Received signal, initiating shutdown", signal=sig.name)
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler, sig)

    try:
        # 6. Start workers and HTTP server
        await job_queue.start()
        await http_server.start()
        logger.info("chatrelay started successfully")

        await shutdown_event.wait()

    except asyncio.CancelledError:
        logger.info("Main loop cancelled")

    finally:
        # 7. Shutdown
        logger.info("Shutting down")
        try:
            await asyncio.wait_for(
                _shutdown(http_server, job_queue, shutdown_timeout),
                timeout=shutdown_timeout,
            )
            logger.info("chatrelay stopped")
        except TimeoutError:
            logger.warning(
                "Shutdown timed out, forcing termination",
                timeout_seconds=shutdown_timeout,
            )
        finally:
            await session.close()
            await database.close()

    return 0


async def _shutdown(
    http_server: HTTPServer, job_queue: JobQueue, timeout: float
) -> None:
    """Stop accepting webhooks, then drain the queue."""
    await http_server.stop()
    # Leave part of the budget for cancelling handlers that overrun
    await job_queue.close(timeout=timeout * 0.8)


def main() -> None:
    """Main entry point."""
    args = parse_args()
    config_path = args.config

    try:
        exit_code = asyncio.run(main_async(config_path))
        sys.exit(exit_code)
    except ConfigFileNotFoundError:
        print(f"Error: {config_path} not found", file=sys.stderr)
        sys.exit(1)
    except ConfigError as e:
        print(f"Error: Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except ValidationError as e:
        print(f"Error: Configuration validation error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
