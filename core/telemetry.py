"""Structured logging and turn tracing"""
import logging
import structlog
from contextlib import asynccontextmanager
from time import perf_counter


def configure_structlog(json_output: bool = True) -> None:
    """Install the processor chain used by every telemetry record"""
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_structlog()

logger = structlog.get_logger("codex_bridge.telemetry")


class Telemetry:
    """Timing and outcome records for thread turns"""

    def __init__(self):
        self.logger = logger

    @asynccontextmanager
    async def trace_task(self, name: str, **context):
        """Time an async block; the yielded dict may be enriched before exit"""
        start = perf_counter()
        self.logger.info(f"{name}.start", **context)

        try:
            yield context
            duration = perf_counter() - start
            self.logger.info(
                f"{name}.complete",
                duration_ms=round(duration * 1000, 2),
                **context
            )
        except Exception as e:
            duration = perf_counter() - start
            self.logger.error(
                f"{name}.failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round(duration * 1000, 2),
                **context
            )
            raise

    def log_event(self, event_type: str, level: str = "info", **context):
        """Log structured event"""
        log_fn = getattr(self.logger, level, self.logger.info)
        log_fn(event_type, **context)

    def record_usage(self, thread_id, usage) -> None:
        """Token counts reported by turn.completed"""
        if usage is None:
            return
        self.logger.info(
            "turn.usage",
            thread_id=thread_id,
            input_tokens=usage.input_tokens,
            cached_input_tokens=usage.cached_input_tokens,
            output_tokens=usage.output_tokens,
        )


def setup_logging(level: str = "INFO") -> None:
    """Route stdlib and structlog output to stderr at ``level``"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    configure_structlog(json_output=not logging.getLogger().isEnabledFor(logging.DEBUG))


# Global telemetry instance
telemetry = Telemetry()
