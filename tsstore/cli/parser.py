"""
tsstore CLI argument parser.

This module implements the store maintenance command-line interface using
argparse. Store diagnostics are routed through ``logging``; command results
go to stdout.
"""

import argparse
import logging
import signal
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional

from tsstore import __version__
from tsstore.core.cancellation import CancellationToken
from tsstore.core.diagnostics import LoggingDiagnosticSink
from tsstore.core.environment import StoreEnvironment
from tsstore.core.exceptions import ConfigurationError
from tsstore.store.service import StoreService

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


class CLI:
    """tsstore command-line interface."""

    def __init__(self):
        """Initialize CLI with argument parser."""
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """
        Create argument parser with all subcommands.

        Returns:
            Configured ArgumentParser instance
        """
        parser = argparse.ArgumentParser(
            prog="tsstore",
            description="tsstore - on-demand store of TypeScript compiler versions",
            epilog='Use "tsstore COMMAND --help" for command-specific help',
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        parser.add_argument(
            "--version", action="version", version=f"tsstore {__version__}"
        )
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Enable verbose output"
        )
        parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Enable minimal output (errors only)",
        )
        parser.add_argument(
            "--config",
            type=Path,
            metavar="PATH",
            help="Path to configuration file (default: ./tsstore.yaml)",
        )
        parser.add_argument(
            "--store-path",
            type=Path,
            metavar="PATH",
            help="Store root directory (overrides TSSTORE_STORE_PATH)",
        )

        subparsers = parser.add_subparsers(
            dest="command", help="Available commands", metavar="COMMAND"
        )

        install = subparsers.add_parser(
            "install",
            help="Install compiler versions",
            description="Resolve tags and install the matching compiler versions",
        )
        install.add_argument("tags", nargs="+", metavar="TAG", help="Version or tag")

        resolve = subparsers.add_parser(
            "resolve",
            help="Resolve a tag to a version",
            description="Print the concrete version a tag resolves to",
        )
        resolve.add_argument("tag", metavar="TAG", help="Version or tag")

        subparsers.add_parser(
            "list",
            help="List supported tags",
            description="List every version and tag known to the store manifest",
        )
        subparsers.add_parser(
            "update",
            help="Refresh registry metadata",
            description="Fetch the latest metadata from the registry",
        )
        subparsers.add_parser(
            "prune",
            help="Remove the store",
            description="Remove all installed versions and the store manifest",
        )

        return parser

    def parse_args(self, argv: Optional[List[str]] = None):
        """
        Parse command-line arguments.

        Args:
            argv: Arguments to parse (uses sys.argv if None)

        Returns:
            Parsed arguments namespace
        """
        return self.parser.parse_args(argv)

    def run(self, argv: Optional[List[str]] = None) -> int:
        """
        Parse arguments and run the selected command.

        Args:
            argv: Command-line arguments (default: sys.argv[1:])

        Returns:
            Exit code
        """
        args = self.parse_args(argv)
        self._configure_logging(args)

        if not args.command:
            self.parser.print_help()
            return EXIT_FAILURE

        try:
            environment = StoreEnvironment.resolve(
                config_file=args.config, store_path=args.store_path
            )
        except ConfigurationError as e:
            logger.error(str(e))
            return EXIT_FAILURE

        sink = LoggingDiagnosticSink()
        store = StoreService(environment, sink=sink)
        cancellation = CancellationToken()

        with _cancel_on_interrupt(cancellation):
            handler = getattr(self, f"_run_{args.command}")
            exit_code = handler(store, args, cancellation)

        if cancellation.cancelled:
            return EXIT_CANCELLED
        if exit_code or sink.error_count:
            return EXIT_FAILURE
        return EXIT_OK

    def _configure_logging(self, args):
        """
        Configure logging based on verbose/quiet flags.

        Args:
            args: Parsed arguments with verbose/quiet flags
        """
        if args.verbose:
            level = logging.DEBUG
            format_str = "%(levelname)s [%(name)s] %(message)s"
        elif args.quiet:
            level = logging.ERROR
            format_str = "%(levelname)s: %(message)s"
        else:
            level = logging.INFO
            format_str = "%(message)s"

        logging.basicConfig(
            level=level,
            format=format_str,
            force=True,
        )

    def _run_install(self, store: StoreService, args, cancellation) -> Optional[int]:
        store.open(cancellation)
        for tag in args.tags:
            if cancellation.cancelled:
                return
            module_path = store.install(tag, cancellation)
            if module_path is not None:
                print(f"{tag}: {module_path}")

    def _run_resolve(self, store: StoreService, args, cancellation) -> Optional[int]:
        store.open(cancellation)
        version = store.resolve_tag(args.tag)
        if version is not None:
            print(version)
        elif store.is_open:
            logger.error(f"Cannot resolve the '{args.tag}' tag.")
            return EXIT_FAILURE

    def _run_list(self, store: StoreService, args, cancellation) -> Optional[int]:
        store.open(cancellation)
        for tag in store.supported_tags():
            print(tag)

    def _run_update(self, store: StoreService, args, cancellation) -> Optional[int]:
        store.open(cancellation)
        store.update(cancellation)

    def _run_prune(self, store: StoreService, args, cancellation) -> Optional[int]:
        store.prune()


@contextmanager
def _cancel_on_interrupt(cancellation: CancellationToken):
    """Turn Ctrl-C into a cancellation request for the running command."""

    def handle(signum, frame):
        logger.debug("Interrupted, cancelling")
        cancellation.cancel()

    previous = signal.signal(signal.SIGINT, handle)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point."""
    sys.exit(CLI().run(argv))


__all__ = ["CLI", "main"]
