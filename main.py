# main.py
import argparse
import logging
import os
import platform
import signal
import socket
import sys
import threading
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version
from typing import List, Optional, Union

from werkzeug.serving import make_server

from errors import ConfigurationError, LoadError, TransportError
from log_utils import configure_logging, parse_level
from remote import check_health, set_remote_log_level
from rules_loader import load_rules
from scan_engine import ScanEngine
from server import create_app
from settings import Settings

PACKAGE_NAME = "yara-rest-api"


# --- Startup modes ---------------------------------------------------------

@dataclass(frozen=True)
class ServeMode:
    pass


@dataclass(frozen=True)
class HealthCheckMode:
    pass


@dataclass(frozen=True)
class SetLogLevelMode:
    level: str


Mode = Union[ServeMode, HealthCheckMode, SetLogLevelMode]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=PACKAGE_NAME, description="YARA scanning over HTTP")
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "-health-check", "--health-check", dest="health_check", action="store_true",
        help="Probe the instance running on PORT and exit",
    )
    group.add_argument(
        "-set-log-level", "--set-log-level", dest="set_log_level", metavar="LEVEL", default="",
        help="Change the log level of the instance running on PORT and exit. "
             "Possible values are trace,debug,info,warn,error,fatal,panic",
    )
    return parser


def resolve_mode(argv: Optional[List[str]] = None) -> Mode:
    args = build_parser().parse_args(argv)
    if args.health_check:
        return HealthCheckMode()
    if args.set_log_level:
        return SetLogLevelMode(args.set_log_level.strip().lower())
    return ServeMode()


# --- Serve -----------------------------------------------------------------

def log_banner(logger: logging.Logger) -> None:
    try:
        app_version = version(PACKAGE_NAME)
    except PackageNotFoundError:
        app_version = "dev"
    logger.info("Yara-rest-api application is starting...")
    logger.info("Version    : %s", os.environ.get("VERSION") or app_version)
    logger.info("Commit     : %s", os.environ.get("GIT_COMMIT") or "unknown")
    logger.info("Build date : %s", os.environ.get("BUILD_DATE") or "unknown")
    logger.info("OSarch     : %s/%s", platform.system().lower(), platform.machine())


def bind_listener(host: str, port: int) -> socket.socket:
    # werkzeug exits the process on bind errors, so bind first and hand over the fd
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    try:
        return socket.create_server((host, port), family=family)
    except OSError as e:
        raise TransportError(f"cannot listen on {host}:{port}: {e}") from e


def serve(settings: Settings, logger: logging.Logger) -> int:
    rule_set = load_rules(settings.rules_dir, logger)
    logger.info(
        "Successfully loaded %d rules from %d file(s) in %s",
        len(rule_set), rule_set.source_count, settings.rules_dir,
    )

    engine = ScanEngine(
        rule_set, logger,
        timeout=settings.scan_timeout,
        max_concurrent_scans=settings.max_concurrent_scans,
    )
    app = create_app(settings, logger, rule_set, engine)

    listener = bind_listener(settings.host, settings.port)
    httpd = make_server(settings.host, settings.port, app, threaded=True, fd=listener.fileno())

    stop = threading.Event()

    def handle_shutdown(signum, frame):
        logger.info("Received %s, shutting down", signal.Signals(signum).name)
        stop.set()

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    worker = threading.Thread(target=httpd.serve_forever, name="http-server", daemon=True)
    worker.start()
    logger.info("Listening on %s:%d", settings.host, settings.port)

    stop.wait()
    httpd.shutdown()
    worker.join()
    httpd.server_close()
    listener.close()
    logger.info("Yara-rest-api stopped.")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    mode = resolve_mode(argv)
    logger = configure_logging()

    try:
        settings = Settings.from_env(require_rules_dir=isinstance(mode, ServeMode))
    except ConfigurationError as e:
        logger.error("Failed to process env var: %s", e)
        return 1
    logger.setLevel(parse_level(settings.log_level))

    if isinstance(mode, HealthCheckMode):
        return 0 if check_health(settings.port, logger) else 1

    if isinstance(mode, SetLogLevelMode):
        try:
            parse_level(mode.level)
        except ConfigurationError as e:
            logger.error("%s", e)
            return 1
        return 0 if set_remote_log_level(settings.port, mode.level, logger) else 1

    log_banner(logger)
    try:
        return serve(settings, logger)
    except LoadError as e:
        logger.error("Got an error while loading yara rules from dir %s: %s", settings.rules_dir, e)
    except TransportError as e:
        logger.error("%s", e)
    except Exception:
        logger.exception("Yara-rest-api failed to start")
    return 1


if __name__ == "__main__":
    sys.exit(main())
