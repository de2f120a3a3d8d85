import argparse
import asyncio
import json
import logging
import signal
import sys
import time
from datetime import datetime
from typing import List, Optional

from dotenv import load_dotenv

from playgen.application.pipeline import PlaylistPipeline
from playgen.crosscutting.config import ConfigManager, get_config_manager, setup_config
from playgen.crosscutting.logging import CorrelationContext, log_error, setup_logging
from playgen.crosscutting.reporting import DispatchReport, create_dispatch_report
from playgen.infrastructure.pacing import RequestPacer
from playgen.infrastructure.providers.lastfm import LastfmPlaycountService
from playgen.infrastructure.providers.spotify import SpotifyCatalog
from playgen.infrastructure.scraping.scraper import WebScraper

COMMANDS = ('generate', 'config')


class CLI:
    """Command Line Interface for playgen."""

    def __init__(self):
        """Initialize CLI."""
        # .env is loaded by main() so tests stay deterministic
        self.parser = self._create_parser()
        self._setup_signal_handlers()
        self._start_time = None

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        parser = argparse.ArgumentParser(
            prog='playgen',
            description='Generate Spotify playlists from a text description'
        )

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        generate_parser = subparsers.add_parser(
            'generate', help='Generate a playlist (default command)'
        )
        generate_parser.add_argument(
            'file',
            nargs='?',
            default='-',
            help='Playlist description file; "-" reads from stdin (default)'
        )
        generate_parser.add_argument(
            '--url',
            help='Scrape playlist entries from a web page instead of a file'
        )
        generate_parser.add_argument(
            '--delay-ms',
            type=int,
            help='Delay before every remote request in milliseconds (default: 100)'
        )
        generate_parser.add_argument(
            '--market',
            help='Spotify market for search and top tracks (default: US)'
        )
        generate_parser.add_argument(
            '--no-playcount',
            action='store_true',
            help='Do not query Last.fm, even if an API key is configured'
        )
        generate_parser.add_argument(
            '--report-path',
            help='Directory for the JSON dispatch report'
        )
        self._add_common_arguments(generate_parser)

        config_parser = subparsers.add_parser('config', help='Show configuration summary')
        self._add_common_arguments(config_parser)

        return parser

    def _add_common_arguments(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            '--config-dir',
            help='Configuration directory (default: ~/.playgen)'
        )
        parser.add_argument(
            '--log-level',
            choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
            default='WARNING',
            help='Logging level'
        )
        parser.add_argument(
            '--log-file',
            help='Also write logs to this file'
        )

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            logger = logging.getLogger(__name__)
            logger.warning(f"Received signal {signum}, shutting down...")
            self._cleanup_resources()
            sys.exit(130)  # Standard exit code for signal termination

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def _cleanup_resources(self) -> None:
        """Log execution time on exit."""
        logger = logging.getLogger(__name__)
        if self._start_time:
            duration = time.time() - self._start_time
            logger.info(f"CLI execution time: {duration:.2f}s")

    def _normalize_argv(self, argv: Optional[List[str]]) -> List[str]:
        """Make `generate` the default command."""
        argv = list(sys.argv[1:] if argv is None else argv)
        if not argv or (argv[0] not in COMMANDS and argv[0] not in ('-h', '--help')):
            argv.insert(0, 'generate')
        return argv

    def _validate_arguments(self, args: argparse.Namespace) -> None:
        """Validate CLI arguments."""
        if getattr(args, 'delay_ms', None) is not None and args.delay_ms < 0:
            raise ValueError("--delay-ms must not be negative")
        if getattr(args, 'url', None) and args.file != '-':
            raise ValueError("Give either a file or --url, not both")

    def _create_run_id(self) -> str:
        """Create unique run identifier."""
        return f"playgen_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

    def _get_config(self, args: argparse.Namespace) -> ConfigManager:
        if args.config_dir:
            return setup_config(args.config_dir)
        return get_config_manager()

    async def _read_input(self, args: argparse.Namespace, pacer: RequestPacer) -> str:
        """Read the playlist description from the page, the file or stdin."""
        if args.url:
            return await WebScraper(args.url, pacer=pacer).fetch_text()
        if args.file == '-':
            return sys.stdin.read()
        with open(args.file, 'r', encoding='utf-8') as f:
            return f.read()

    def _create_playcount_service(self, args: argparse.Namespace, config: ConfigManager,
                                  pacer: RequestPacer) -> Optional[LastfmPlaycountService]:
        if args.no_playcount:
            return None
        api_key = config.get_lastfm_api_key()
        if not api_key:
            logging.getLogger(__name__).info("LASTFM_API_KEY not set, play counts unavailable")
            return None
        return LastfmPlaycountService(api_key, pacer=pacer)

    async def _generate_playlist(self, args: argparse.Namespace, run_id: str) -> DispatchReport:
        """Read input, run the pipeline and print the URIs."""
        config = self._get_config(args)
        delay_ms = args.delay_ms if args.delay_ms is not None else config.get_request_delay_ms()
        pacer = RequestPacer(delay_ms)

        credentials = config.get_spotify_client_config()
        catalog = SpotifyCatalog(
            client_id=credentials['client_id'],
            client_secret=credentials['client_secret'],
            pacer=pacer,
            market=args.market or config.get_market(),
            search_limit=config.get_search_limit(),
        )
        playcount_service = self._create_playcount_service(args, config, pacer)

        text = await self._read_input(args, pacer)
        source = args.url or ('stdin' if args.file == '-' else args.file)
        report = create_dispatch_report(run_id, source=source)

        pipeline = PlaylistPipeline(text, catalog, playcount_service=playcount_service,
                                    report=report, run_id=run_id)
        result = await pipeline.dispatch()
        if result:
            print(result)
        return report

    def _generate(self, args: argparse.Namespace) -> None:
        logger = logging.getLogger(__name__)
        run_id = self._create_run_id()
        setup_logging(args.log_level, args.log_file, run_id)

        with CorrelationContext(run_id=run_id):
            report = asyncio.run(self._generate_playlist(args, run_id))

            dropped = report.dropped()
            if dropped:
                logger.warning(f"{len(dropped)} of {len(report.entries)} entries could not be resolved")
            if args.report_path:
                report_file = report.save(args.report_path)
                logger.info(f"Report saved to: {report_file}")

    def _show_config(self, args: argparse.Namespace) -> None:
        setup_logging(args.log_level, args.log_file)
        config = self._get_config(args)
        print(json.dumps(config.get_config_summary(), indent=2))

    def run(self, argv: Optional[List[str]] = None) -> None:
        """Run the CLI."""
        self._start_time = time.time()

        try:
            args = self.parser.parse_args(self._normalize_argv(argv))
            self._validate_arguments(args)

            if args.command == 'generate':
                self._generate(args)
            elif args.command == 'config':
                self._show_config(args)
            else:
                self.parser.print_help()
                sys.exit(1)

        except KeyboardInterrupt:
            logger = logging.getLogger(__name__)
            logger.warning("Operation cancelled by user")
            sys.exit(130)
        except Exception as e:
            logger = logging.getLogger(__name__)
            log_error(logger, "playgen failed", e)
            print(f"playgen: {e}", file=sys.stderr)
            sys.exit(1)
        finally:
            self._cleanup_resources()


def main():
    """Main entry point."""
    load_dotenv()
    cli = CLI()
    cli.run()


if __name__ == '__main__':
    main()
