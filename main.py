#!/usr/bin/env python3
"""
Main entry point for the Smart Calendar scheduling engine

Runs the API server, or ranks / schedules a single intent read from a JSON
file against an in-memory calendar loaded from an events file.
"""

import json
import logging
import sys

from config.settings import Config
from src.api.flask_server import SmartCalendarAPI, parse_intent_payload
from src.calendar.mock_calendar_manager import InMemoryCalendarManager
from src.scheduler.errors import SchedulingError
from src.scheduler.models import ExistingEvent, WorkspaceScope
from src.scheduler.smart_scheduler import SmartScheduler
from utils.logger import SmartCalendarLogger

logger = logging.getLogger(__name__)


def _load_json(path: str):
    with open(path, 'r') as f:
        return json.load(f)


def load_calendar(events_file: str = None) -> InMemoryCalendarManager:
    """In-memory calendar store seeded from a JSON list of event documents"""
    store = InMemoryCalendarManager()
    if not events_file:
        return store

    for document in _load_json(events_file):
        store.add_event(ExistingEvent.from_dict(document), document.get("workspaceId"))
    logger.info(f"📋 Loaded {len(store.all_events())} events from {events_file}")
    return store


def _write_output(result, output_file: str = None):
    text = json.dumps(result, indent=2)
    if output_file:
        with open(output_file, 'w') as f:
            f.write(text)
    else:
        print(text)


def run_server(host=None, port=None):
    """Run the Flask API server"""
    logger.info("Starting Smart Calendar scheduling engine...")

    try:
        api = SmartCalendarAPI()
        api.run(host=host, port=port)
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")


def run_suggest(intent_file: str, events_file: str = None, user: str = None,
                workspace: str = None, output_file: str = None) -> int:
    """Rank slots for one intent and print the suggestions"""
    scheduler = SmartScheduler(calendar_store=load_calendar(events_file))
    scope = WorkspaceScope(user_id=user, workspace_id=workspace)

    try:
        intent = parse_intent_payload(_load_json(intent_file))
        slots = scheduler.rank(intent, scope)
    except SchedulingError as e:
        _write_output({"success": False, "error": e.to_dict()}, output_file)
        return 1

    _write_output({"success": True, "suggestions": [s.to_dict() for s in slots]}, output_file)
    return 0


def run_schedule(intent_file: str, events_file: str = None, user: str = None, workspace: str = None,
                 auto_resolve: bool = False, output_file: str = None) -> int:
    """Rank, auto-select the top slot and commit it to the in-memory calendar"""
    scheduler = SmartScheduler(calendar_store=load_calendar(events_file))
    scope = WorkspaceScope(user_id=user, workspace_id=workspace)

    try:
        intent = parse_intent_payload(_load_json(intent_file))
    except SchedulingError as e:
        _write_output({"success": False, "error": e.to_dict()}, output_file)
        return 1

    decision = scheduler.schedule(intent, scope, auto_resolve=auto_resolve)
    _write_output(decision.to_dict(), output_file)
    return 0 if decision.success else 1


def run_smoke(api_url="http://localhost:5000", user="smoke@example.com"):
    """Run the smoke suite against a running server"""
    from tests.test_client import SmartCalendarClient

    logger.info(f"Running smoke checks against {api_url}")

    results = SmartCalendarClient(api_url, user).run_smoke_suite()

    summary = results["summary"]
    print(f"\nSmoke Results:")
    print(f"  Total: {summary['total']}")
    print(f"  Passed: {summary['passed']}")
    print(f"  Failed: {summary['failed']}")
    print(f"  Avg response time: {summary['avg_response_time']:.2f}s")

    return 0 if summary["failed"] == 0 else 1


def main(argv=None):
    """Main CLI entry point"""
    import argparse

    parser = argparse.ArgumentParser(description='Smart Calendar scheduling engine')
    parser.add_argument('--log-level', default=Config.LOG_LEVEL, help='Logging level')
    parser.add_argument('--log-file', default=Config.LOG_FILE, help='Also write logs to this file')
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    server_parser = subparsers.add_parser('server', help='Run API server')
    server_parser.add_argument('--host', default=Config.API_HOST, help='Host to bind to')
    server_parser.add_argument('--port', type=int, default=Config.API_PORT, help='Port to bind to')

    for name, help_text in (('suggest', 'Rank time slots for an intent'),
                            ('schedule', 'Schedule an intent into the best slot')):
        command_parser = subparsers.add_parser(name, help=help_text)
        command_parser.add_argument('intent_file', help='Intent JSON file')
        command_parser.add_argument('--events', help='JSON file with existing calendar events')
        command_parser.add_argument('--user', default='local-user', help='Calendar owner id')
        command_parser.add_argument('--workspace', help='Workspace id')
        command_parser.add_argument('--output', help='Output JSON file')
        if name == 'schedule':
            command_parser.add_argument('--auto-resolve', action='store_true',
                                        help='Move flexible events out of the way')

    smoke_parser = subparsers.add_parser('smoke', help='Run smoke checks against a running server')
    smoke_parser.add_argument('--url', default='http://localhost:5000', help='API URL to check')
    smoke_parser.add_argument('--user', default='smoke@example.com', help='Value for X-User-Id')

    args = parser.parse_args(argv)
    SmartCalendarLogger.setup_logging(log_level=args.log_level, log_file=args.log_file)

    if args.command == 'server':
        run_server(host=args.host, port=args.port)
        return 0

    if args.command in ('suggest', 'schedule'):
        if args.command == 'suggest':
            return run_suggest(args.intent_file, args.events, args.user, args.workspace, args.output)
        return run_schedule(args.intent_file, args.events, args.user, args.workspace,
                            args.auto_resolve, args.output)

    if args.command == 'smoke':
        return run_smoke(api_url=args.url, user=args.user)

    parser.print_help()
    return 0


if __name__ == '__main__':
    sys.exit(main())
