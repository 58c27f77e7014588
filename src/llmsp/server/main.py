"""Entry point for the llmsp language server."""

import click
import structlog

from llmsp import __version__
from llmsp.config import LlmspSettings
from llmsp.server.app import create_server
from llmsp.server.logging import configure_logging


@click.command()
@click.version_option(version=__version__, prog_name="llmsp")
@click.option("--tcp", is_flag=True, help="Serve over TCP instead of stdio.")
@click.option("--host", default="127.0.0.1", show_default=True, help="TCP host.")
@click.option("--port", default=2087, show_default=True, type=int, help="TCP port.")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Override LLMSP_LOG_LEVEL.",
)
def main(tcp: bool, host: str, port: int, log_level: str | None) -> None:
    """Run the llmsp language server.

    Editors normally launch it over stdio. Connection details for
    Sourcegraph come from the LLMSP_ environment or the editor settings.
    """
    settings = LlmspSettings()
    if log_level:
        settings = settings.model_copy(update={"log_level": log_level.upper()})
    configure_logging(settings.log_level, settings.log_format, settings.log_file)

    logger = structlog.get_logger(__name__)
    server = create_server(settings)
    if tcp:
        logger.info("server.starting", transport="tcp", host=host, port=port)
        server.start_tcp(host, port)
    else:
        logger.info("server.starting", transport="stdio")
        server.start_io()


if __name__ == "__main__":
    main()
