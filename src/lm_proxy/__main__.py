"""Entry point for running lm-proxy directly."""

import logging

import typer
import uvicorn

from .app import create_app
from .config import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_UPSTREAM_URL, Config
from .observability import configure, instrument_app

logger = logging.getLogger("lm_proxy")

cli = typer.Typer(add_completion=False)


@cli.command()
def serve(
    upstream: str = typer.Option(
        DEFAULT_UPSTREAM_URL, "--upstream", envvar="UPSTREAM_URL",
        help="Upstream API URL (e.g. https://api.openai.com/v1)",
    ),
    host: str = typer.Option(
        DEFAULT_HOST, "--host", envvar="HOST",
        help="Host address to listen on (e.g. 0.0.0.0 or 127.0.0.1)",
    ),
    port: int = typer.Option(
        DEFAULT_PORT, "--port", "-p", envvar="PORT", min=0, max=65535,
        help="Port to listen on",
    ),
    metrics_url: str | None = typer.Option(
        None, "--metrics-url", envvar="METRICS_URL",
        help="URL to post usage metrics (e.g. http://localhost:8080/metrics)",
    ),
    debug: bool = typer.Option(False, "--debug", help="Verbose console logging"),
):
    """Run the proxy server."""
    config = Config(upstream_url=upstream, host=host, port=port, metrics_url=metrics_url)

    configure(debug=debug)
    logger.info("Starting lm-proxy...")

    app = instrument_app(create_app(config))

    logger.info(f"Listening on {config.listen_addr}")
    uvicorn.run(app, host=config.host, port=config.port, log_config=None)


def main():
    cli()


if __name__ == "__main__":
    main()
