#!/usr/bin/env python3
"""
Outreach CLI - command-line front end for the outreach service.

Usage:
    outreach register --name NAME       Create an account
    outreach recruiters                 List recruiters
    outreach add NAME EMAIL COMPANY     Add one recruiter
    outreach import FILE.csv            Import recruiters from CSV
    outreach delete <id>                Delete a recruiter
    outreach send <id> [--ai]           Send to one recruiter
    outreach send-all [--ai]            Send to everyone, 5 at a time
    outreach batch                      Server-side sequential batch
    outreach status                     Recruiter status summary
    outreach config show                Show SMTP configuration
    outreach config set --host ...      Create or update SMTP configuration

Credentials come from --email/--password or OUTREACH_EMAIL/OUTREACH_PASSWORD;
the service URL from --url or OUTREACH_API_URL.
"""

import argparse
import logging
import os
import sys

import requests

from client.api import OutreachAPI, OutreachAPIError
from client.dashboard import EmailDashboard, EmailStatus

logging.basicConfig(
    level=logging.INFO,
    format='%(message)s',
)
logger = logging.getLogger(__name__)

CONFIG_FLAGS = {
    'host': 'SMTP_HOST',
    'port': 'SMTP_PORT',
    'user': 'SMTP_USER',
    'smtp_password': 'SMTP_PASS',
    'sender': 'EMAIL_FROM',
    'subject': 'EMAIL_SUBJECT',
    'rate_limit': 'EMAIL_RATE_LIMIT',
}


def _connect(args) -> OutreachAPI:
    api = OutreachAPI(args.url)
    if not args.email or not args.password:
        raise SystemExit("✗ Credentials required: --email/--password or OUTREACH_EMAIL/OUTREACH_PASSWORD")
    api.login(args.email, args.password)
    return api


def _print_recruiters(recruiters):
    if not recruiters:
        print("\n✓ No recruiters yet\n")
        return
    print()
    print(f"{'ID':>5}  {'Name':<24} {'Company':<22} {'Email':<30} {'Sent':>4}  Status")
    print("─" * 100)
    for r in recruiters:
        print(f"{r['id']:>5}  {r['name'][:24]:<24} {r['company'][:22]:<22} "
              f"{r['email'][:30]:<30} {r['reachOutFrequency']:>4}  {r.get('status', '')}")
    print()


def cmd_register(args):
    """Create an account."""
    api = OutreachAPI(args.url)
    api.register(args.name, args.email, args.password)
    print(f"\n✓ Registered {args.email}\n")


def cmd_recruiters(args):
    """List recruiters."""
    _print_recruiters(_connect(args).list_recruiters())


def cmd_add(args):
    """Add one recruiter."""
    recruiter = _connect(args).add_recruiter(args.name, args.recruiter_email, args.company)
    print(f"\n✓ Added recruiter #{recruiter['id']} {recruiter['name']}\n")


def cmd_import(args):
    """Import recruiters from a CSV file."""
    result = _connect(args).upload_recruiters(args.file)
    print(f"\n✓ {result['message']}")
    for skipped in result.get('skipped', []):
        reasons = '; '.join(f"{e['field']}: {e['message']}" for e in skipped['errors'])
        print(f"  ✗ row {skipped['row']}: {reasons}")
    print()


def cmd_delete(args):
    """Delete a recruiter."""
    _connect(args).delete_recruiter(args.recruiter_id)
    print(f"\n✓ Deleted recruiter #{args.recruiter_id}\n")


def cmd_send(args):
    """Send to one recruiter."""
    result = _connect(args).send_one(args.recruiter_id, use_ai=args.ai)
    note = " (AI unavailable, static body used)" if result.get('aiFallback') else ""
    print(f"\n✓ {result['message']}{note}\n")


def cmd_send_all(args):
    """Send to every recruiter in client-side groups."""
    api = _connect(args)
    if not api.has_configured:
        print("\n✗ Configure SMTP first: outreach config set ...\n")
        return 1

    def report(recruiter_id, state):
        if state.status == EmailStatus.SUCCESS:
            print(f"  ✓ #{recruiter_id}")
        elif state.status == EmailStatus.ERROR:
            print(f"  ✗ #{recruiter_id}: {state.error}")

    dashboard = EmailDashboard(api, use_ai=args.ai, on_change=report)
    dashboard.refresh()
    result = dashboard.send_all()
    print(f"\n✓ {result.succeeded} sent, {result.failed} failed in {result.groups} groups\n")
    return 0 if result.failed == 0 else 1


def cmd_batch(args):
    """Run the server-side sequential batch."""
    details = _connect(args).send_batch()['details']
    print(f"\n✓ Sent {details['sent']}, failed {details['failed']}")
    for error in details['errors']:
        print(f"  ✗ {error['email']}: {error['error']}")
    print()


def cmd_status(args):
    """Show recruiter status summary."""
    result = _connect(args).status()
    summary = result['summary']
    print(f"\nPending: {summary['pending']}  Sent: {summary['sent']}  Failed: {summary['failed']}")
    _print_recruiters(result['data'])


def cmd_config(args):
    """Show or save SMTP configuration."""
    api = _connect(args)
    if args.config_command == 'show':
        configuration = api.get_configuration()
        if configuration is None:
            print("\n✗ No configuration saved\n")
            return 1
        print()
        for key, value in configuration.items():
            print(f"  {key:<18} {value}")
        print()
        return 0

    values = {key: getattr(args, flag) for flag, key in CONFIG_FLAGS.items()
              if getattr(args, flag) is not None}
    if api.get_configuration() is None:
        api.save_configuration(values)
        print("\n✓ Configuration saved\n")
    else:
        api.update_configuration(values)
        print("\n✓ Configuration updated\n")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='outreach',
        description="Outreach CLI - recruiter email outreach",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--url', default=os.environ.get('OUTREACH_API_URL', 'http://localhost:5000'))
    parser.add_argument('--email', default=os.environ.get('OUTREACH_EMAIL'))
    parser.add_argument('--password', default=os.environ.get('OUTREACH_PASSWORD'))

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    register_parser = subparsers.add_parser('register', help='Create an account')
    register_parser.add_argument('--name', required=True, help='Display name')

    subparsers.add_parser('recruiters', help='List recruiters')

    add_parser = subparsers.add_parser('add', help='Add a recruiter')
    add_parser.add_argument('name')
    add_parser.add_argument('recruiter_email')
    add_parser.add_argument('company')

    import_parser = subparsers.add_parser('import', help='Import recruiters from CSV')
    import_parser.add_argument('file')

    delete_parser = subparsers.add_parser('delete', help='Delete a recruiter')
    delete_parser.add_argument('recruiter_id', type=int)

    send_parser = subparsers.add_parser('send', help='Send to one recruiter')
    send_parser.add_argument('recruiter_id', type=int)
    send_parser.add_argument('--ai', action='store_true', help='Use an AI-generated body')

    send_all_parser = subparsers.add_parser('send-all', help='Send to everyone, 5 at a time')
    send_all_parser.add_argument('--ai', action='store_true', help='Use AI-generated bodies')

    subparsers.add_parser('batch', help='Server-side sequential batch')
    subparsers.add_parser('status', help='Recruiter status summary')

    config_parser = subparsers.add_parser('config', help='SMTP configuration')
    config_sub = config_parser.add_subparsers(dest='config_command', required=True)
    config_sub.add_parser('show', help='Show configuration')
    set_parser = config_sub.add_parser('set', help='Create or update configuration')
    set_parser.add_argument('--host')
    set_parser.add_argument('--port', type=int)
    set_parser.add_argument('--user')
    set_parser.add_argument('--smtp-password', dest='smtp_password')
    set_parser.add_argument('--sender', help="From address, e.g. 'Jane Doe <jane@example.com>'")
    set_parser.add_argument('--subject')
    set_parser.add_argument('--rate-limit', dest='rate_limit', type=int, help='Emails per minute')

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    commands = {
        'register': cmd_register,
        'recruiters': cmd_recruiters,
        'add': cmd_add,
        'import': cmd_import,
        'delete': cmd_delete,
        'send': cmd_send,
        'send-all': cmd_send_all,
        'batch': cmd_batch,
        'status': cmd_status,
        'config': cmd_config,
    }

    try:
        return commands[args.command](args) or 0
    except OutreachAPIError as e:
        print(f"\n✗ {e.message}")
        for error in e.errors:
            print(f"  - {error.get('field')}: {error.get('message')}")
        print()
        return 1
    except requests.RequestException as e:
        print(f"\n✗ Request failed: {e}\n")
        return 1


if __name__ == '__main__':
    sys.exit(main())
