#!/usr/bin/env python3
"""
smtplemail: sendmail-compatible mail submission over an authenticated SMTP relay.
Reads one message on stdin and relays it to the configured server (SSL, STARTTLS or plain).

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version. See LICENSE for full text.
"""
import argparse
import os
import sys

# Ensure project root is on path when run as script
_PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

from core.config import build_context, load_env_config, load_file_config, merge_config
from core.constants import DEFAULT_CONFIG_FILE, EXIT_CONFIG, EXIT_SUCCESS, SECURITY_MODES
from core.errors import ConfigurationError
from core.runner import main_send
from core.setup_wizard import run_setup


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smtplemail",
        description="sendmail replacement: reads a message on stdin and relays it through an SMTP server.",
        allow_abbrev=False,
    )
    # sendmail flags
    parser.add_argument("-f", dest="sender", metavar="ADDRESS", help="Sets the envelope sender address")
    parser.add_argument("-F", dest="sender_full_name", metavar="NAME", help="Sets the sender's full name")
    parser.add_argument("-t", dest="read_recipients_from_headers", action="store_true",
                        help="Reads recipients from the message headers (To, Cc, Bcc)")
    parser.add_argument("-v", dest="verbose", action="store_true", help="Verbose (debug) logging")
    parser.add_argument("-i", dest="ignore_dots", action="store_true",
                        help="Ignore single dots on a line (always the case; accepted for compatibility)")
    parser.add_argument("-N", dest="dsn", metavar="DSN", help="Delivery status notifications (accepted, ignored)")
    parser.add_argument("-o", dest="options", metavar="OPTION", action="append",
                        help="sendmail option such as -oi (accepted, ignored)")
    parser.add_argument("-B", dest="body_type", metavar="TYPE", help="Body type (accepted, ignored)")
    # smtplemail options
    parser.add_argument("--config", metavar="FILE", default=DEFAULT_CONFIG_FILE,
                        help=f"Path to JSON config file (default: {DEFAULT_CONFIG_FILE})")
    parser.add_argument("--setup", action="store_true", help="Run setup to create config file and sendmail symlink")
    parser.add_argument("--smtp-user", "--smtp_user", dest="smtp_user", metavar="USER", help="SMTP user")
    parser.add_argument("--smtp-password", "--smtp_password", dest="smtp_password", metavar="SECRET",
                        help="SMTP password")
    parser.add_argument("--smtp-host", "--smtp_host", dest="smtp_host", metavar="HOST", help="SMTP host")
    parser.add_argument("--smtp-port", "--smtp_port", dest="smtp_port", metavar="PORT",
                        help="SMTP port (default: 465 for SSL, 587 for TLS, 25 for None)")
    parser.add_argument("--smtp-security", "--smtp_security", dest="smtp_security", metavar="MODE",
                        help=f"SMTP security ({', '.join(SECURITY_MODES)})")
    parser.add_argument("--smtp-timeout", "--smtp_timeout", dest="smtp_timeout", type=float, metavar="SEC",
                        help="SMTP connect/read/write timeout in seconds (default: 30)")
    parser.add_argument("--no-tls-verify", dest="smtp_tls_verify", action="store_false", default=None,
                        help="Do not verify the server certificate (SSL and STARTTLS)")
    parser.add_argument("--send-from", "--send_from", dest="send_from", metavar="ADDRESS",
                        help="Send email from this address")
    parser.add_argument("--log-file", "--log_file", dest="log_file", metavar="FILE", help="Append logs to file")
    parser.add_argument("--log-level", "--log_level", dest="log_level", choices=("error", "info"),
                        help="Log level (default: error)")
    parser.add_argument("recipients", nargs="*", metavar="ADDRESS", help="Recipient addresses")
    return parser


def parse_args(argv=None) -> argparse.Namespace:
    return _build_parser().parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)

    if args.setup:
        try:
            run_setup(args.config)
        except ConfigurationError as e:
            print(f"smtplemail: {e}", file=sys.stderr)
            sys.exit(EXIT_CONFIG)
        sys.exit(EXIT_SUCCESS)

    cli_cfg = {
        "smtp_user": args.smtp_user,
        "smtp_password": args.smtp_password,
        "smtp_host": args.smtp_host,
        "smtp_port": args.smtp_port,
        "smtp_security": args.smtp_security,
        "smtp_timeout": args.smtp_timeout,
        "smtp_tls_verify": args.smtp_tls_verify,
        "send_from": (args.send_from or "").strip() or None,
        "log_file": (args.log_file or "").strip() or None,
        "log_level": args.log_level,
        "verbose": True if args.verbose else None,
    }
    try:
        file_cfg = load_file_config(args.config)
        env_cfg = load_env_config()
        merged = merge_config(file_cfg, env_cfg, cli_cfg)
        ctx = build_context(
            merged,
            sender=args.sender or "",
            sender_full_name=args.sender_full_name or "",
            read_recipients_from_headers=args.read_recipients_from_headers,
            recipients=tuple(args.recipients),
        )
    except ConfigurationError as e:
        print(f"smtplemail: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG)

    sys.exit(main_send(ctx, sys.stdin.buffer))


if __name__ == "__main__":
    main()
