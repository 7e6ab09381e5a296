import argparse
import logging
import sys

from .config import RelayConfig
from .server import RelayServer

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="url_relay",
        description="HTTP relay: http://<relay>/<target URL> fetches the target through the relay",
    )
    parser.add_argument("--config", help="Path to JSON configuration file")
    parser.add_argument("--host", help="Host address to bind (default: localhost)")
    parser.add_argument("--port", type=int, help="Port to listen on (default: 8080)")
    parser.add_argument("--scheme", choices=["http", "https"],
                        help="Scheme callers use to reach the relay (default: http)")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = RelayConfig(args.config, host=args.host, port=args.port, scheme=args.scheme)
    except ValueError as e:
        logger.error(str(e))
        return 2

    server = RelayServer.from_config(config)
    try:
        server.start()
    except KeyboardInterrupt:
        logger.info("Shutting down relay")
        server.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
