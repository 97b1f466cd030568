# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

"""
Command line entry point for the TrueNAS exporter.
"""

import argparse
import logging
import os
import signal
import sys
import threading
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from truenas_exporter.api.client import TrueNasClient
from truenas_exporter.config import load_config
from truenas_exporter.errors import ConfigError
from truenas_exporter.exporter import Exporter
from truenas_exporter.server import start_server

FORMAT = '%(asctime)s - %(levelname)s - %(funcName)s - %(lineno)d - %(message)s'
DATEFMT = '%Y-%m-%dT%H:%M:%SZ'


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export TrueNAS metrics to Prometheus")
    parser.add_argument('--config', type=str, default=os.environ.get('TRUENAS_EXPORTER_CONFIG'),
        help='Path to YAML config file. Environment variables (TRUENAS_EXPORTER_*) override file values.')
    parser.add_argument('--truenas-host', type=str, default=os.environ.get('TRUENAS_HOST'),
        help='TrueNAS host[:port] (env TRUENAS_HOST)')
    parser.add_argument('--truenas-api-key', type=str, default=os.environ.get('TRUENAS_API_KEY'),
        help='TrueNAS API key (env TRUENAS_API_KEY)')
    parser.add_argument('--addr', type=str, default=os.environ.get('EXPORTER_ADDR'),
        help='Address for the metrics server (env EXPORTER_ADDR, default: 0.0.0.0)')
    parser.add_argument('--port', type=int, default=os.environ.get('EXPORTER_PORT'),
        help='Port for the metrics server (env EXPORTER_PORT, default: 9100)')
    parser.add_argument('--logfile', type=str, default=None,
        help='Path to log file. Default: console only.')
    parser.add_argument('--loglevel', type=str, choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], default='INFO',
        help='Log level. Default: INFO')
    parser.add_argument('--maxIterations', type=int, default=0,
        help='Maximum number of collection iterations to run before exiting. Default: 0 (run indefinitely).')
    return parser.parse_args(argv)


def configure_logging(loglevel: str, logfile: Optional[str] = None) -> None:
    log_level = getattr(logging, loglevel.upper())

    if logfile:
        logfile_dir = os.path.dirname(logfile) or '.'
        if os.path.exists(logfile_dir) and os.access(logfile_dir, os.W_OK):
            try:
                logging.basicConfig(filename=logfile, level=log_level, format=FORMAT, datefmt=DATEFMT)
                logging.info('Logging to file: ' + logfile)
            except OSError as e:
                logging.basicConfig(level=log_level, format=FORMAT, datefmt=DATEFMT)
                logging.error(f'Failed to configure file logging to {logfile}: {e}')
                logging.warning('Falling back to console logging only')
        else:
            logging.basicConfig(level=log_level, format=FORMAT, datefmt=DATEFMT)
            logging.error(f'Logfile directory {logfile_dir} does not exist or is not writable')
            logging.warning('Falling back to console logging only')
    else:
        logging.basicConfig(level=log_level, format=FORMAT, datefmt=DATEFMT)

    # websocket-client traces frames at DEBUG, which would include the API key
    logging.getLogger("websocket").setLevel(level=max(log_level, logging.INFO))


def build_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Nested config mapping holding only the values given on the command line."""
    overrides = {}
    truenas = {}
    if args.truenas_host:
        truenas['host'] = args.truenas_host
    if args.truenas_api_key:
        truenas['api_key'] = args.truenas_api_key
    if truenas:
        overrides['truenas'] = truenas

    server = {}
    if args.addr:
        server['addr'] = args.addr
    if args.port:
        server['port'] = args.port
    if server:
        overrides['server'] = server
    return overrides


def resolve_max_iterations(args: argparse.Namespace, log: logging.Logger) -> int:
    max_iterations = args.maxIterations
    if os.environ.get('MAX_ITERATIONS'):
        try:
            max_iterations = int(os.environ['MAX_ITERATIONS'])
            log.info(f"Override: Using MAX_ITERATIONS={max_iterations} from environment variable (was {args.maxIterations})")
        except ValueError:
            log.warning(f"Invalid MAX_ITERATIONS environment variable: {os.environ['MAX_ITERATIONS']}")
    return max_iterations


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    configure_logging(args.loglevel, args.logfile)
    LOG = logging.getLogger(__name__)

    max_iterations = resolve_max_iterations(args, LOG)
    if max_iterations < 0:
        print("Error: --maxIterations must be a non-negative integer.", file=sys.stderr)
        return 1
    elif max_iterations > 0:
        LOG.info(f"Will run for {max_iterations} iterations and then exit")

    try:
        config = load_config(args.config, build_overrides(args))
    except ConfigError as e:
        LOG.error(f"Configuration error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    LOG.info(f"Starting TrueNAS exporter for {config.truenas.host} (TLS: {config.truenas.use_tls}, validation: {config.truenas.tls_validation})")

    client = TrueNasClient(config.truenas)
    exporter = Exporter(config, client)
    httpd, _ = start_server(exporter.metrics, config.server.addr, config.server.port)

    stop_event = threading.Event()

    def handle_signal(signum, frame):
        LOG.info(f"Received signal {signum}, stopping after the current collection")
        stop_event.set()

    signal.signal(signal.SIGTERM, handle_signal)

    try:
        exporter.run(max_iterations, stop_event)
    except KeyboardInterrupt:
        LOG.info("Interrupted by user. Exiting gracefully.")
    finally:
        httpd.shutdown()
        exporter.close()
    return 0


if __name__ == '__main__':
    sys.exit(main())
