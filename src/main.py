#!/usr/bin/env python3
"""
Inbox Rules Engine - Main entry point
"""
import argparse
import json
import logging
import os
import sys

# Add the parent directory to Python path for imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog
from dotenv import load_dotenv

from src.database import RuleStore, init_db, session_scope
from src.errors import InboxRulesError, NotFoundError
from src.mail import MailboxClient, get_mailbox_service, get_user_email
from src.processing import EmailProcessingService

logger = structlog.get_logger()


def configure_logging() -> None:
    logging.basicConfig(level=os.getenv('LOG_LEVEL', 'INFO').upper())
    # Disable debug logging for noisy modules
    logging.getLogger('googleapiclient.discovery').setLevel(logging.WARNING)
    logging.getLogger('googleapiclient.discovery_cache').setLevel(logging.ERROR)


def parse_args(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description='Inbox Rules Engine')
    parser.add_argument('--user', required=True, help='Owning user id')
    commands = parser.add_subparsers(dest='command', required=True)

    commands.add_parser('init-db', help='Create the database schema')

    check = commands.add_parser('check', help='Check whether a thread is processed')
    check.add_argument('thread_id')

    mark = commands.add_parser('mark', help='Mark a thread as processed')
    mark.add_argument('thread_id')
    mark.add_argument('--reason', required=True)
    mark.add_argument('--visible', action='store_true', help='Keep the thread visible')

    unmark = commands.add_parser('unmark', help='Bring a processed thread back')
    unmark.add_argument('thread_id')

    auto = commands.add_parser('auto-process', help='Auto-process all threads that are done')
    auto.add_argument('--file', action='store_true', help='File threads whose rule names a folder')

    commands.add_parser('stats', help='Processing statistics')

    file_cmd = commands.add_parser('file', help='File a thread into a topic folder and mark it done')
    file_cmd.add_argument('thread_id')

    feedback = commands.add_parser('feedback', help='Give feedback on a rule application')
    feedback.add_argument('application_id')
    feedback.add_argument('feedback', choices=['correct', 'incorrect', 'partially_correct'])
    feedback.add_argument('--notes')

    rules = commands.add_parser('rules', help='Manage processing rules')
    rule_commands = rules.add_subparsers(dest='rules_command', required=True)
    rule_commands.add_parser('list')
    create = rule_commands.add_parser('create')
    create.add_argument('instruction')
    create.add_argument('--thread', dest='thread_id', help='Example thread id')
    delete = rule_commands.add_parser('delete')
    delete.add_argument('rule_id')
    toggle = rule_commands.add_parser('toggle')
    toggle.add_argument('rule_id')
    toggle.add_argument('state', choices=['on', 'off'])
    confidence = rule_commands.add_parser('confidence')
    confidence.add_argument('rule_id')
    confidence.add_argument('score', type=float)
    reconcile = rule_commands.add_parser('reconcile')
    reconcile.add_argument('rule_id')

    return parser.parse_args(argv)


def connect_mailbox() -> MailboxClient:
    service = get_mailbox_service()
    user_email = get_user_email(service)
    logger.info("Authenticated with mailbox", user=user_email)
    return MailboxClient(service)


def run_rules_command(service: EmailProcessingService, args):
    if args.rules_command == 'list':
        return [rule.model_dump(mode='json') for rule in service.get_user_rules(args.user)]
    if args.rules_command == 'create':
        rule = service.create_rule_from_instruction(args.user, args.instruction, args.thread_id)
        return {'rule': rule.model_dump(mode='json'), 'message': f'Processing rule "{rule.name}" created'}
    if args.rules_command == 'delete':
        service.delete_rule(args.user, args.rule_id)
        return {'message': 'Processing rule deleted'}
    if args.rules_command == 'toggle':
        is_active = args.state == 'on'
        service.toggle_rule(args.user, args.rule_id, is_active)
        return {'message': f"Rule {'activated' if is_active else 'deactivated'}"}
    if args.rules_command == 'confidence':
        service.set_rule_confidence(args.user, args.rule_id, args.score)
        return {'message': f'Confidence set to {args.score}'}
    if args.rules_command == 'reconcile':
        return service.reconcile_rule_counters(args.user, args.rule_id).model_dump(mode='json')
    raise ValueError(f"Unknown rules command {args.rules_command}")


def run_command(service: EmailProcessingService, args):
    if args.command == 'check':
        return service.check_thread_processing_status(args.thread_id, args.user).model_dump(mode='json')
    if args.command == 'mark':
        success = service.mark_thread_as_processed(args.thread_id, args.user, args.reason, not args.visible)
        return {'success': success}
    if args.command == 'unmark':
        return {'success': service.unmark_thread_as_processed(args.thread_id, args.user)}
    if args.command == 'auto-process':
        count = service.auto_process_threads(args.user)
        return {'processed_count': count, 'message': f'Auto-processed {count} threads'}
    if args.command == 'stats':
        return service.get_processing_stats(args.user).model_dump()
    if args.command == 'file':
        return service.file_and_done(args.thread_id, args.user).model_dump()
    if args.command == 'feedback':
        service.provide_feedback(args.user, args.application_id, args.feedback, args.notes)
        return {'message': 'Feedback recorded'}
    if args.command == 'rules':
        return run_rules_command(service, args)
    raise ValueError(f"Unknown command {args.command}")


def main(argv=None) -> int:
    """Main entry point for the Inbox Rules Engine"""
    args = parse_args(argv)
    load_dotenv()
    configure_logging()

    init_db()
    if args.command == 'init-db':
        logger.info("Database initialised")
        return 0

    needs_mailbox = args.command == 'file' or (args.command == 'auto-process' and args.file)

    with session_scope() as db:
        try:
            mailbox = connect_mailbox() if needs_mailbox else None
            service = EmailProcessingService(RuleStore(db), mailbox=mailbox)
            output = run_command(service, args)
        except NotFoundError as e:
            logger.error("Not found", code=e.code, error=e.message)
            print(json.dumps({'error': e.message, 'code': e.code}))
            return 2
        except InboxRulesError as e:
            logger.error("Request failed", code=e.code, error=e.message)
            print(json.dumps({'error': e.message, 'code': e.code, **e.details}, default=str))
            return 1

    print(json.dumps(output, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
