#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
--- Lightning Invoice Wrapper ---

Purpose:
Takes somebody else's BOLT11 invoice and hands out a "wrapped" hold invoice
for the same payment hash, with the wrapper fee added on top. Once the payer
has locked funds on the wrapped invoice, the original invoice is paid from our
node, and the preimage obtained that way settles the wrapped invoice. If the
original cannot be paid, the wrapped invoice is canceled so the payer gets the
locked funds back.

Prerequisites:
1.  LND with the REST interface enabled and the invoicesrpc sub-server compiled in.
2.  A `config.ini` in the current directory (see `config.ini.example`) or the
    environment variables FEE_PERCENT, FEE_FIXED, LND_HOSTNAME, LND_TLS_CERT
    and LND_MACAROON.

Usage:
invoice-wrapper <payment_request> [--config PATH] [--accept-timeout SECONDS] [--log-file PATH] [--verbose]

Exit codes: 0 once the wrapped invoice is settled, 1 on any failure,
130 when aborted with CTRL-C.

Disclaimer:
This tool moves real Lightning funds. A failure after the original invoice is
paid but before settlement leaves the wrapped invoice ACCEPTED; settle it by
hand with the printed preimage before it expires.
"""

import argparse
import logging
import os
import sys
from logging.handlers import RotatingFileHandler

from .config import default_config_location, default_log_location, load_config
from .errors import ForwardingFailed, SettlementFailed, WrapperError
from .lnd_rest import LndRestClient
from .orchestrator import WrapOrchestrator

script_logger = logging.getLogger("invoice_wrapper")


# --- ANSI Color Codes ---
class Colors:
    HEADER = "\033[95m"
    OKCYAN = "\033[96m"
    OKGREEN = "\033[92m"
    WARNING = "\033[93m"
    FAIL = "\033[91m"
    ENDC = "\033[0m"
    BOLD = "\033[1m"


def print_color(text, color_code, bold=False, file=None):
    """Prints text in a specified color and optionally bold."""
    prefix = f"{color_code}{Colors.BOLD}" if bold else color_code
    print(f"{prefix}{text}{Colors.ENDC}", file=file or sys.stdout)


def print_error(text):
    print_color(text, Colors.FAIL, file=sys.stderr)


def setup_logging(log_file_path, verbose=False):
    """Sets up a rotating file logger for the package."""
    logs_dir = os.path.dirname(log_file_path)
    if logs_dir and not os.path.exists(logs_dir):
        os.makedirs(logs_dir, exist_ok=True)

    handler = RotatingFileHandler(
        log_file_path, maxBytes=10 * 1024 * 1024, backupCount=5  # 10 MB
    )
    handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))

    script_logger.addHandler(handler)
    script_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return handler


def positive_seconds(value):
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number of seconds: {value!r}")
    if not seconds > 0 or seconds == float("inf"):
        raise argparse.ArgumentTypeError(f"must be a positive number of seconds, got {value!r}")
    return seconds


def parse_arguments(argv=None):
    """Parses command-line arguments."""
    parser = argparse.ArgumentParser(
        description="--- Lightning Invoice Wrapper ---",
        epilog=__doc__[__doc__.find("Disclaimer:"):].strip(),
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("payment_request", help="The original BOLT11 payment request to wrap.")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to the configuration file (default: config.ini in the current directory).",
    )
    parser.add_argument(
        "--accept-timeout",
        type=positive_seconds,
        default=None,
        help="Give up (and cancel the wrapped invoice) if nobody pays it within this many seconds.\n"
        "Overrides accept_timeout_seconds from config.ini. Default: wait forever.",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Rotating log file (default: logs/invoice-wrapper.log in the current directory).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log every LND REST request at DEBUG level.",
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_arguments(argv)
    log_file = args.log_file or default_log_location()
    try:
        setup_logging(log_file, verbose=args.verbose)
    except OSError as e:
        print_error(f"Cannot write log file {log_file}: {e}")
        sys.exit(1)

    try:
        config = load_config(args.config or default_config_location())
    except WrapperError as e:
        print_error(f"Configuration error: {e}")
        script_logger.error(f"Configuration error: {e}")
        sys.exit(1)

    accept_timeout = (
        args.accept_timeout if args.accept_timeout is not None else config.accept_timeout_seconds
    )
    gateway = LndRestClient.from_config(config)
    orchestrator = WrapOrchestrator(
        gateway,
        config.fee,
        accept_timeout_seconds=accept_timeout,
        progress=lambda text: print_color(text, Colors.OKCYAN),
    )

    script_logger.info(f"Wrapping invoice {args.payment_request[:40]}...")
    try:
        result = orchestrator.wrap(args.payment_request)
    except KeyboardInterrupt:
        print_color("\n\nAborted by user (CTRL-C). Exiting.", Colors.WARNING, bold=True)
        print_color(
            "The wrapped invoice may still be OPEN or ACCEPTED. Run again with the same "
            "invoice to pick it up, or cancel it manually.",
            Colors.WARNING,
        )
        script_logger.warning("Aborted by user (KeyboardInterrupt).")
        sys.exit(130)
    except SettlementFailed as e:
        print_error(str(e))
        print_error("The original invoice IS paid. Settle the wrapped invoice manually before it expires.")
        script_logger.critical(f"Wrap failed during settlement: {e}")
        sys.exit(1)
    except ForwardingFailed as e:
        print_error(str(e))
        script_logger.error(f"Wrap failed, wrapped invoice canceled: {e}")
        sys.exit(1)
    except WrapperError as e:
        print_error(str(e))
        script_logger.error(f"Wrap failed: {type(e).__name__}: {e}")
        sys.exit(1)

    print_color(
        f"Wrapped invoice settled, earned {result.fee_msat} msat.", Colors.OKGREEN, bold=True
    )
    script_logger.info(
        f"Wrap SUCCESS: hash {result.original.payment_hash}, fee {result.fee_msat} msat"
    )
    sys.exit(0)


if __name__ == "__main__":
    main()
