"""
Command-line entry point serving the query methods of a repository over MCP.
"""

import argparse
import asyncio
import importlib
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional, Type

from . import __version__
from .config import LOG_LEVELS, Config, get_config
from .repository import SolrRepository, SolrRepositoryFactory
from .server import run_server

logger = logging.getLogger(__name__)

ENV_VARIABLES = (
    ("SOLR_BASE_URL", "SOLR base URL (default: http://localhost:8983/solr)"),
    ("SOLR_COLLECTION", "Default SOLR collection (required)"),
    ("SOLR_USERNAME", "SOLR username (optional)"),
    ("SOLR_PASSWORD", "SOLR password (optional)"),
    ("SOLR_TIMEOUT", "Request timeout in seconds (default: 30)"),
    ("SOLR_VERIFY_SSL", "Verify SSL certificates (default: true)"),
    ("SOLR_MAX_ROWS", "Documents per request for find_all (default: 1000)"),
    ("SOLR_NAMED_QUERIES_FILE", "Properties file with named queries (optional)"),
    ("SOLR_COMMIT_ON_WRITE", "Commit after repository writes (default: true)"),
    ("LOG_LEVEL", "Logging level (default: INFO)"),
)


def setup_logging(log_level: str) -> None:
    """
    Set up logging configuration.

    Args:
        log_level: The logging level to use.
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    for noisy in ('pysolr', 'urllib3', 'httpx'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def load_repository_class(path: str) -> Type[SolrRepository]:
    """
    Import a repository class given as ``package.module:ClassName``.

    Raises:
        ValueError: If the path is malformed or does not name a SolrRepository.
    """
    module_name, separator, class_name = path.partition(":")
    if not separator or not module_name or not class_name:
        raise ValueError(f"Repository must be given as module:Class, got {path!r}")

    repository_class = getattr(importlib.import_module(module_name), class_name, None)
    if not isinstance(repository_class, type) or not issubclass(
        repository_class, SolrRepository
    ):
        raise ValueError(f"{path} is not a SolrRepository subclass")
    return repository_class


def _epilog() -> str:
    example = "%(prog)s --repository shop.repositories:ProductRepository"
    lines = ["Examples:"]
    for extra in ("", " --env-file prod.env", " --log-level DEBUG", " --validate-config"):
        lines.append(f"  {example}{extra}")
    lines += ["", "Environment Variables:"]
    width = max(len(name) for name, _ in ENV_VARIABLES)
    lines += [f"  {name.ljust(width)}  {text}" for name, text in ENV_VARIABLES]
    return "\n".join(lines)


def create_arg_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        description="Serve the query methods of a Solr repository as MCP tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=_epilog(),
    )
    parser.add_argument(
        "--repository", required=True, help="Repository class to serve, as module:Class"
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        help="Path to .env file (default: .env in current directory)",
    )
    parser.add_argument(
        "--named-queries",
        type=Path,
        help="Override SOLR_NAMED_QUERIES_FILE",
    )
    parser.add_argument(
        "--log-level", choices=LOG_LEVELS, help="Override log level from configuration"
    )
    parser.add_argument(
        "--validate-config", action="store_true", help="Validate configuration and exit"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def describe(config: Config, repository_class: Type[SolrRepository]) -> List[str]:
    lines = [
        f"Repository: {repository_class.__name__}",
        f"SOLR URL: {config.solr.base_url}",
        f"SOLR Collection: {config.solr.collection}",
    ]
    if config.repository.named_queries_file:
        lines.append(f"Named queries: {config.repository.named_queries_file}")
    return lines


async def serve(config: Config, repository: SolrRepository) -> int:
    """Run the MCP server until it exits or SIGINT/SIGTERM is received."""
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def request_shutdown(signum: int) -> None:
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        shutdown_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, request_shutdown, signum)

    server_task = asyncio.create_task(run_server(config, repository))
    shutdown_task = asyncio.create_task(shutdown_event.wait())
    done, pending = await asyncio.wait(
        [server_task, shutdown_task], return_when=asyncio.FIRST_COMPLETED
    )

    for task in pending:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    if server_task in done and server_task.exception() is not None:
        logger.error(f"Server error: {server_task.exception()}")
        return 1

    logger.info("MCP server shutdown completed")
    return 0


async def main_async(
    repository_path: str,
    env_file: Optional[Path] = None,
    log_level_override: Optional[str] = None,
    validate_only: bool = False,
    named_queries_file: Optional[Path] = None,
) -> int:
    """
    Load configuration and the repository class, then serve or validate.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    try:
        config = get_config(env_file)
        if log_level_override:
            config.mcp.log_level = log_level_override.upper()
        if named_queries_file:
            config.repository.named_queries_file = named_queries_file

        setup_logging(config.mcp.log_level)
        repository_class = load_repository_class(repository_path)

        if validate_only:
            logger.info("Configuration validation successful!")
            for line in describe(config, repository_class):
                logger.info(line)
            return 0

        for line in describe(config, repository_class):
            logger.info(line)
        repository = SolrRepositoryFactory.from_config(config).get_repository(
            repository_class
        )
        return await serve(config, repository)

    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def main() -> None:
    """Main entry point for the command-line interface."""
    args = create_arg_parser().parse_args()

    sys.exit(asyncio.run(main_async(
        repository_path=args.repository,
        env_file=args.env_file,
        log_level_override=args.log_level,
        validate_only=args.validate_config,
        named_queries_file=args.named_queries,
    )))


if __name__ == "__main__":
    main()
