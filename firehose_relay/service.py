import argparse
import asyncio
from typing import List, Optional

import uvicorn

from .config import Settings, settings
from .logging_setup import configure_logging, get_logger
from .server import create_app


log = get_logger(__name__)


class Service:
    """Owns the web server that hosts the relay endpoints.

    Sessions are created per subscriber by the WebSocket route; this class only
    manages process-level startup and shutdown.
    """

    def __init__(self, config: Settings = settings) -> None:
        log.info("service_start", service=config.service_name, upstream=config.upstream_url)
        self.config = config
        self.app = create_app(config)
        server_config = uvicorn.Config(
            self.app,
            host=config.host,
            port=config.port,
            log_level=config.log_level.lower(),
            access_log=False,  # Reduce noise in logs
        )
        self.server = uvicorn.Server(server_config)

    async def run(self) -> None:
        """Serve until uvicorn receives a stop signal."""
        await self.server.serve()
        log.info("service_stop", open_sessions=len(self.app.state.sessions))


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Relay a simplified view of the atproto firehose to WebSocket subscribers. "
                    "Options override the matching environment variables.",
    )
    parser.add_argument("--host", help="Interface to bind (HOST)")
    parser.add_argument("--port", type=int, help="Port to listen on (PORT)")
    parser.add_argument("--upstream-url", help="Firehose subscribeRepos endpoint (UPSTREAM_URL)")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR (LOG_LEVEL)")
    parser.add_argument("--log-format", choices=["console", "json"], help="Log renderer (LOG_FORMAT)")
    parser.add_argument(
        "--debug",
        action="store_const",
        const=True,
        help="Accept subscribers without authentication (DEBUG)",
    )
    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> Settings:
    overrides = {name: value for name, value in vars(args).items() if value is not None}
    return Settings(**overrides) if overrides else settings


def main(argv: Optional[List[str]] = None) -> None:
    config = load_settings(parse_args(argv))
    configure_logging(config.log_level, config.log_format)
    try:
        asyncio.run(Service(config).run())
    except KeyboardInterrupt:
        log.info("service_interrupted")
