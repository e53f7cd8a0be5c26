import argparse
import asyncio
import logging

from dealer.models import LobbyConfig
from .server import LobbyServer


def main() -> None:
    parser = argparse.ArgumentParser(description="Card lobby host server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for the shuffle (omit for a fresh random source)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level))

    config = LobbyConfig(host=args.host, port=args.port, seed=args.seed)
    server = LobbyServer(config)
    asyncio.run(server.start())


if __name__ == "__main__":
    main()
