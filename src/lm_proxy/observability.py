"""Observability setup - Logfire configuration.

Modules log through the standard logging module; configure() routes those
records into Logfire so they land inside the current span, and instruments
httpx so upstream and metrics calls show up as child spans.
"""

import logging

import logfire
from fastapi import FastAPI


def configure(service_name: str = "lm-proxy", debug: bool = False) -> None:
    """Configure Logfire and the stdlib logging bridge.

    Args:
        service_name: Name to identify this service in traces.
        debug: If True, log to console at DEBUG level instead of INFO.
    """
    logfire.configure(
        service_name=service_name,
        scrubbing=False,  # Too aggressive, redacts normal words
        send_to_logfire="if-token-present",
        console=logfire.ConsoleOptions(min_log_level="debug" if debug else "info"),
    )

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        handlers=[logfire.LogfireLoggingHandler()],
        force=True,
    )
    # The access log duplicates what instrument_fastapi already records
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logfire.instrument_httpx()


def instrument_app(app: FastAPI) -> FastAPI:
    """Instrument the FastAPI app once Logfire is configured."""
    logfire.instrument_fastapi(app)
    return app
