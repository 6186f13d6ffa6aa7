#!/usr/bin/env python3
"""
Command-line interface for mailcraft.

Composes a message from the command line and sends it through the
configured SMTP server.

Usage:
    mailcraft [OPTIONS] --from ADDR --to ADDR --subject TEXT --body TEXT

Options:
    --config FILE   TOML configuration file
    --debug         Enable debug logging (shows the SMTP dialogue)
    --version       Show version and exit
    --help          Show this message and exit
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from mailcraft import __version__
from mailcraft.common.config import LoggingSettings, Settings, get_settings
from mailcraft.common.exceptions import MailcraftError
from mailcraft.html_message import HTMLMessage
from mailcraft.message import Message
from mailcraft.mime import Attachment, MultipartMessage, create_text_part
from mailcraft.smtp.sender import SMTPSender

logger = logging.getLogger(__name__)


def setup_logging(config: LoggingSettings, debug: bool = False) -> None:
    """
    Configure logging.

    Args:
        config: Logging settings.
        debug: Force debug logging.
    """
    log_level = logging.DEBUG if debug else getattr(logging, config.level)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file:
        handlers.append(logging.FileHandler(config.file, encoding="utf-8"))

    logging.basicConfig(
        level=log_level,
        format=config.format,
        handlers=handlers,
        force=True,
    )

    if not debug:
        logging.getLogger("mailcraft.smtp.protocol").setLevel(
            max(log_level, logging.INFO))


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog="mailcraft",
        description="mailcraft - compose and send an e-mail over SMTP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    Send a plain text message:
        mailcraft --from me@example.com --to you@example.com \\
            --subject Hello --body "Hi there"

    Send an HTML message with an attachment:
        mailcraft --config mail.toml --from me@example.com \\
            --to you@example.com --subject Report \\
            --html-file report.html --attach report.pdf

Environment Variables:
    MAILCRAFT_CONFIG_FILE   Configuration file path
    SMTP_HOST, SMTP_PORT    SMTP server
    SMTP_SSL                'ssl' or 'tls'
    SMTP_USERNAME           Authentication user
    SMTP_PASSWORD           Authentication password
        """,
    )

    parser.add_argument("--config", type=Path, help="TOML configuration file")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"mailcraft {__version__}",
    )

    parser.add_argument("--from", dest="sender", required=True,
                        help="Sender address, e.g. 'Name <me@example.com>'")
    parser.add_argument("--to", action="append", required=True,
                        help="Recipient address (repeatable)")
    parser.add_argument("--cc", action="append", default=[],
                        help="Carbon copy address (repeatable)")
    parser.add_argument("--bcc", action="append", default=[],
                        help="Blind carbon copy address (repeatable)")
    parser.add_argument("--subject", required=True, help="Message subject")

    body = parser.add_mutually_exclusive_group()
    body.add_argument("--body", help="Plain text body")
    body.add_argument("--body-file", type=Path,
                      help="File holding the plain text body")

    parser.add_argument("--html-file", type=Path,
                        help="File holding an HTML body")
    parser.add_argument("--attach", action="append", default=[], type=Path,
                        help="File to attach (repeatable)")

    args = parser.parse_args(argv)
    if args.body is None and args.body_file is None and args.html_file is None:
        parser.error("one of --body, --body-file or --html-file is required")
    return args


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise MailcraftError(f"Cannot read {path}: {e}") from e


def build_message(args: argparse.Namespace) -> Message:
    """
    Compose the message described by the command-line arguments.

    Raises:
        MailcraftError: If an address is invalid or a file cannot be read.
    """
    text = args.body
    if args.body_file is not None:
        text = _read_text(args.body_file)

    message: Message
    if args.html_file is not None:
        message = HTMLMessage()
        message.set_html(_read_text(args.html_file))
        if text:
            message.set_plain(text)
        for path in args.attach:
            message.attach(path)
    elif args.attach:
        message = Message()
        parts = [create_text_part(text or "")]
        parts.extend(Attachment(path) for path in args.attach)
        message.set_body(MultipartMessage(parts))
    else:
        message = Message()
        message.set_body(text)

    message.set_from(args.sender)
    for address in args.to:
        message.add_to(address)
    for address in args.cc:
        message.add_cc(address)
    for address in args.bcc:
        message.add_bcc(address)
    message.set_subject(args.subject)
    return message


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for the mailcraft command.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    args = parse_args(argv)

    try:
        settings = Settings.from_toml(args.config) if args.config else get_settings()
    except MailcraftError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(settings.logging, args.debug)
    logger.debug("mailcraft v%s", __version__)

    try:
        message = build_message(args)
        with SMTPSender(settings.smtp) as sender:
            result = sender.send(message)
    except MailcraftError as e:
        logger.error("Sending failed: %s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 1

    logger.info("Delivered to %s", ", ".join(result.recipients))
    return 0


if __name__ == "__main__":
    sys.exit(main())
