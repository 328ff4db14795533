"""
Integration harness command line.

Usage:
    stack-harness run [--pull] [--no-cleanup]   # full orchestration + tests (default)
    stack-harness debug                         # orchestration only, containers stay up
    stack-harness test 'backend and scraper'    # orchestration + filtered tests
    stack-harness validate                      # orchestration + connectivity checks
    stack-harness clean                         # teardown only
    stack-harness status                        # container health
    stack-harness logs backend 50               # last lines of one service
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Callable, Sequence

from harness.core.config import Settings, get_settings
from harness.core.exceptions import HarnessError, RuntimeCommandError
from harness.core.logging import get_logger, setup_logging
from harness.orchestration.models import OrchestrationRun
from harness.session import HarnessSession, run_orchestration

logger = get_logger("cli")

BANNER = "=" * 60


def _print_failure(session: HarnessSession, run: OrchestrationRun) -> None:
    failure = run.failure
    if failure is None:
        return
    print("\n" + BANNER)
    print(f"❌ Phase {failure.phase + 1} failed: {failure.service}")
    print(f"   {failure.reason}")
    print(BANNER)
    if failure.logs:
        print(f"Last {session.settings.log_tail_lines} lines from {failure.service} logs:")
        print(failure.logs.rstrip())
        print(BANNER + "\n")


def _print_status(session: HarnessSession) -> None:
    print("\n" + BANNER)
    print("STACK HEALTH STATUS")
    print(BANNER)
    for name, status in session.status_lines():
        icon = "✅" if status == "healthy" else "❌"
        print(f"  {icon} {name}: {status}")
    print(BANNER + "\n")


def _print_endpoints(settings: Settings) -> None:
    logger.info("All services running. Access:")
    logger.info(f"  Frontend:        {settings.frontend_url}")
    logger.info(f"  Backend API:     {settings.backend_url}")
    logger.info(f"  Scraper:         {settings.scraper_url}")
    logger.info(f"  Version Manager: {settings.version_manager_url}")
    logger.info(f"  MongoDB:         {settings.mongodb_uri}")


def _clean_existing(session: HarnessSession) -> None:
    logger.info("Cleaning up any existing test environment...")
    try:
        session.runtime.down()
    except RuntimeCommandError as e:
        logger.debug(f"Nothing to clean: {e.message}")


# =============================================================================
# Commands
# =============================================================================


def cmd_run(session: HarnessSession, args: argparse.Namespace) -> int:
    """Full orchestration, tests, coverage and teardown."""
    session.preflight()
    _clean_existing(session)

    if getattr(args, "pull", False):
        logger.info("Pulling latest images...")
        session.runtime.pull([d.runtime_name for d in session.services])

    run = run_orchestration(session)
    try:
        if not run.overall_ready:
            _print_failure(session, run)
            return 1

        asyncio.run(session.check_connectivity(run))
        session.verify_fixtures()
        _print_status(session)

        code = session.run_tests(pattern=getattr(args, "pattern", None))
        if code == 0:
            logger.info("Integration tests passed successfully!")
        else:
            logger.error(f"Integration tests failed with exit code {code}")

        if session.settings.coverage_enabled:
            logger.info("Collecting coverage from all services...")
            session.collect_coverage()

        logger.info(f"Results available in {session.results_dir}")
        return 0 if code == 0 else 1
    finally:
        if getattr(args, "no_cleanup", False):
            session.teardown.disarm()
            logger.warning("Containers left running (--no-cleanup specified)")
        else:
            session.teardown.teardown(run)


def cmd_test(session: HarnessSession, args: argparse.Namespace) -> int:
    """Orchestration plus tests matching a pattern."""
    return cmd_run(session, args)


def cmd_debug(session: HarnessSession, args: argparse.Namespace) -> int:
    """Start everything and leave it running."""
    logger.info("Starting services in debug mode (containers will remain running)")
    session.preflight()

    run = run_orchestration(session, keep_alive=True)
    session.teardown.disarm()

    if not run.overall_ready:
        _print_failure(session, run)
        return 1

    _print_status(session)
    _print_endpoints(session.settings)
    logger.info("Run 'stack-harness clean' to stop all services")
    return 0


def cmd_validate(session: HarnessSession, args: argparse.Namespace) -> int:
    """Startup sequence plus cross-service connectivity, then teardown."""
    session.preflight()
    _clean_existing(session)

    run = run_orchestration(session)
    try:
        if not run.overall_ready:
            _print_failure(session, run)
            return 1
        asyncio.run(session.check_connectivity(run))
        logger.info("Service orchestration validation complete")
        if run.warnings:
            logger.warning(f"{len(run.warnings)} connectivity warning(s)")
        return 0
    finally:
        session.teardown.teardown(run)


def cmd_clean(session: HarnessSession, args: argparse.Namespace) -> int:
    session.teardown.teardown()
    return 1 if session.teardown.failures else 0


def cmd_status(session: HarnessSession, args: argparse.Namespace) -> int:
    print(session.runtime.ps())
    _print_status(session)
    return 0


def cmd_logs(session: HarnessSession, args: argparse.Namespace) -> int:
    name = session.resolve(args.service)
    logger.info(f"Last {args.lines} lines from {name} logs:")
    print(session.runtime.logs(name, tail=args.lines))
    return 0


COMMANDS: dict[str, Callable[[HarnessSession, argparse.Namespace], int]] = {
    "run": cmd_run,
    "test": cmd_test,
    "debug": cmd_debug,
    "validate": cmd_validate,
    "clean": cmd_clean,
    "status": cmd_status,
    "logs": cmd_logs,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stack-harness",
        description="Figure Collector integration test runner",
    )
    parser.add_argument("--compose-file", help="Compose file (overrides COMPOSE_FILE)")
    parser.add_argument("--project", help="Compose project name (overrides COMPOSE_PROJECT)")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    run_parser = subparsers.add_parser("run", help="Run full integration test suite (default)")
    run_parser.add_argument("--pull", action="store_true", help="Pull images before starting")
    run_parser.add_argument(
        "--no-cleanup", action="store_true", help="Keep containers running after tests"
    )

    test_parser = subparsers.add_parser("test", help="Run tests matching a pattern")
    test_parser.add_argument("pattern", help="pytest -k expression")
    test_parser.add_argument(
        "--no-cleanup", action="store_true", help="Keep containers running after tests"
    )

    subparsers.add_parser("debug", help="Start services without running tests")
    subparsers.add_parser("validate", help="Check startup sequence and connectivity only")
    subparsers.add_parser("clean", help="Clean up containers and networks")
    subparsers.add_parser("status", help="Show current service status")

    logs_parser = subparsers.add_parser("logs", help="Show logs for a specific service")
    logs_parser.add_argument("service", help="Service or container name")
    logs_parser.add_argument("lines", nargs="?", type=int, default=100, help="Number of lines")

    return parser


def _settings_for(args: argparse.Namespace) -> Settings:
    settings = get_settings()
    overrides = {}
    if args.compose_file:
        overrides["compose_file"] = args.compose_file
    if args.project:
        overrides["compose_project"] = args.project
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    return settings.model_copy(update=overrides) if overrides else settings


def main(
    argv: Sequence[str] | None = None,
    session_factory: Callable[[Settings], HarnessSession] = HarnessSession,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command or "run"

    settings = _settings_for(args)
    setup_logging(settings)

    session = session_factory(settings)
    try:
        return COMMANDS[command](session, args)
    except HarnessError as e:
        logger.error(e.message)
        return e.exit_code
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
