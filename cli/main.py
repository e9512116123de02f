"""Main CLI entry point for herdmail."""

import argparse
import logging
import smtplib
import sys
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from pathlib import Path
from typing import Optional

from herdmail.config.config_loader import ConfigError, ConfigLoader
from herdmail.config.settings import AppConfig, MailerSettings
from herdmail.services.reporting.message_formatter import MessageFormatter
from herdmail.services.smtp.listener import BindError, SmtpListener
from herdmail.storage.audit_log import AuditLog
from herdmail.storage.database import DatabaseConnection
from herdmail.storage.message_store import MessageStore

logger = logging.getLogger("herdmail")


def load_config(config_path: Optional[Path]) -> AppConfig:
    """Load configuration, exiting with a message if it is unusable."""
    try:
        return ConfigLoader(config_path).load_app_config()
    except (ConfigError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


def setup_logging(config: AppConfig, verbose: bool = False) -> None:
    """Configure root logging to stdout."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, config.logging.level),
        format=config.logging.format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def open_store(config: AppConfig) -> MessageStore:
    """Open the message store described by the configuration."""
    db = DatabaseConnection(config.storage.get_database_path())
    return MessageStore(
        db,
        config.storage.get_messages_dir(),
        max_messages=config.storage.max_messages,
    )


def cmd_serve(args) -> int:
    """Run the capture server until interrupted."""
    config = load_config(args.config)
    setup_logging(config, args.verbose)

    store = open_store(config)
    audit_log = AuditLog(config.storage.get_audit_log_path())
    listener = SmtpListener(config.server, store, audit_log=audit_log)

    logger.info("=== herdmail SMTP capture server starting ===")
    logger.info(f"Storage: {config.storage.get_data_dir()}")
    logger.info(f"Idle timeout: {config.server.idle_timeout}s")
    logger.info(f"Max message size: {config.server.max_message_size} bytes")

    try:
        listener.start(args.host, args.port)
    except BindError as e:
        logger.error(f"SMTP server failed: {e}")
        return 1

    try:
        listener.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down SMTP server...")
    finally:
        listener.stop()
        store.db.close()

    return 0


def cmd_list(args) -> int:
    """List captured messages, newest first."""
    config = load_config(args.config)
    store = open_store(config)
    formatter = MessageFormatter()

    messages = store.list(limit=args.limit)
    for message in messages:
        print(formatter.format_summary(message))

    print("---")
    print(f"{len(messages)} of {store.count()} captured messages")
    return 0


def cmd_show(args) -> int:
    """Show one captured message."""
    config = load_config(args.config)
    store = open_store(config)

    message = store.get(args.message_id)
    if message is None:
        print(f"Message not found: {args.message_id}", file=sys.stderr)
        return 1

    raw = store.get_raw(args.message_id) if not args.headers_only else None
    print(MessageFormatter().format_detail(message, raw))
    return 0


def cmd_clear(args) -> int:
    """Delete every captured message."""
    config = load_config(args.config)
    removed = open_store(config).clear()
    print(f"Deleted {removed} captured messages")
    return 0


def cmd_init_db(args) -> int:
    """Initialize database command."""
    config = load_config(args.config)

    db = DatabaseConnection(config.storage.get_database_path())
    db.execute_schema()
    db.migrate()
    db.close()

    print(f"Database initialized at: {config.storage.get_database_path()}")
    return 0


def cmd_export(args) -> int:
    """Export the audit log as a JSON array."""
    config = load_config(args.config)

    audit_log = AuditLog(config.storage.get_audit_log_path())
    output_path = Path(args.output) if args.output else Path("herdmail_audit_export.json")

    count = audit_log.export_events(output_path)

    print(f"Exported {count} events to: {output_path}")
    return 0


def build_test_message(sender: str, recipient: str, subject: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = recipient
    message["Subject"] = subject
    message["Date"] = formatdate(localtime=True)
    message["Message-ID"] = make_msgid(domain="herd.local")
    message.set_content("This is a test message sent through herdmail.\n")
    return message


def send_test_message(settings: MailerSettings, message: EmailMessage, timeout: float = 10.0) -> None:
    """
    Submit a message the way a development site configured for the server does.

    Raises:
        smtplib.SMTPException: If the server rejects the message
        OSError: If the server cannot be reached
    """
    with smtplib.SMTP(settings.host, settings.port, timeout=timeout) as client:
        client.ehlo()
        if settings.smtp_auth:
            client.login(settings.username, settings.password)
        client.send_message(message)


def cmd_send_test(args) -> int:
    """Send a test message to a running server."""
    config = load_config(args.config)
    settings = config.mailer.model_copy(
        update={
            key: value
            for key, value in (("host", args.host), ("port", args.port))
            if value is not None
        }
    )

    message = build_test_message(args.sender, args.to, args.subject)
    try:
        send_test_message(settings, message)
    except (smtplib.SMTPException, OSError) as e:
        print(f"Error: could not send test message to {settings.host}:{settings.port}: {e}", file=sys.stderr)
        return 1

    print(f"Test message sent to {settings.host}:{settings.port}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="herdmail - local SMTP capture server")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the SMTP capture server")
    serve_parser.add_argument("--config", type=Path, help="Custom config file path")
    serve_parser.add_argument("--host", help="Bind address (overrides config)")
    serve_parser.add_argument("--port", type=int, help="Listen port (overrides config)")
    serve_parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    serve_parser.set_defaults(func=cmd_serve)

    list_parser = subparsers.add_parser("list", help="List captured messages")
    list_parser.add_argument("--config", type=Path, help="Custom config file path")
    list_parser.add_argument("--limit", type=int, help="Show at most this many messages")
    list_parser.set_defaults(func=cmd_list)

    show_parser = subparsers.add_parser("show", help="Show one captured message")
    show_parser.add_argument("message_id", help="Message identifier")
    show_parser.add_argument("--config", type=Path, help="Custom config file path")
    show_parser.add_argument("--headers-only", action="store_true", help="Omit the raw message")
    show_parser.set_defaults(func=cmd_show)

    clear_parser = subparsers.add_parser("clear", help="Delete all captured messages")
    clear_parser.add_argument("--config", type=Path, help="Custom config file path")
    clear_parser.set_defaults(func=cmd_clear)

    init_parser = subparsers.add_parser("init-db", help="Initialize database")
    init_parser.add_argument("--config", type=Path, help="Custom config file path")
    init_parser.set_defaults(func=cmd_init_db)

    export_parser = subparsers.add_parser("export", help="Export audit events")
    export_parser.add_argument("--config", type=Path, help="Custom config file path")
    export_parser.add_argument("--output", type=Path, help="Output file path")
    export_parser.set_defaults(func=cmd_export)

    send_parser = subparsers.add_parser("send-test", help="Send a test message to the server")
    send_parser.add_argument("--config", type=Path, help="Custom config file path")
    send_parser.add_argument("--host", help="Server host (overrides mailer settings)")
    send_parser.add_argument("--port", type=int, help="Server port (overrides mailer settings)")
    send_parser.add_argument("--from", dest="sender", default="wordpress@herd.test", help="Sender address")
    send_parser.add_argument("--to", default="admin@herd.test", help="Recipient address")
    send_parser.add_argument("--subject", default="herdmail test message", help="Subject line")
    send_parser.set_defaults(func=cmd_send_test)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
