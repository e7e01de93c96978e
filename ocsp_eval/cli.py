#!/usr/bin/env python3
"""
Evaluate the OCSP responder of a certificate.

Reads two PEM certificates on stdin: the certificate to check (which may be a
precertificate) followed by the issuer of the final certificate. Writes a JSON
record describing the responder's behaviour to stdout.
"""

import argparse
import sys
from typing import List, NoReturn, Optional

from cryptography.hazmat.primitives import serialization

from .certificate import issuer_fields, load_pem_chain
from .config import Config, config_from_dict, load_config
from .errors import ConfigError, ParseError
from .evaluate import evaluate
from .exporters import export_evaluation_json


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="evalocsp",
        description="Evaluate a certificate's OCSP responder. Reads the certificate and its issuer as PEM from stdin.",
    )
    parser.add_argument("-c", "--config", dest="config_path", help="JSON configuration file")
    parser.add_argument("--user-agent", dest="user_agent", help="User-Agent header for the OCSP query")
    parser.add_argument("--retries", type=int, help="Transport retries for connection failures (default 1)")
    parser.add_argument("-v", "--verbose", action="store_true", default=False, help="Log evaluation stages to stderr")
    return parser


def _fatal(message: str) -> NoReturn:
    print(f"[ERROR] {message}", file=sys.stderr)
    sys.exit(1)


def main(argv: Optional[List[str]] = None) -> None:
    args = _build_parser().parse_args(argv)

    config = Config()
    try:
        if args.config_path:
            config = load_config(args.config_path, config)
        overrides = {}
        if args.user_agent is not None:
            overrides["user_agent"] = args.user_agent
        if args.retries is not None:
            overrides["retries"] = args.retries
        config = config_from_dict(overrides, config)
    except ConfigError as exc:
        _fatal(str(exc))
    if args.verbose:
        config.log_callback = sys.stderr.write

    try:
        chain = load_pem_chain(sys.stdin.buffer.read())
    except ParseError as exc:
        _fatal(f"Error reading certificate chain from stdin: {exc}")
    if len(chain) < 2:
        _fatal("Fewer than 2 certificates provided on stdin")

    cert, issuer = chain[0], chain[1]
    issuer_subject, issuer_pubkey = issuer_fields(issuer)
    evaluation = evaluate(cert.public_bytes(serialization.Encoding.DER), issuer_subject, issuer_pubkey, config)

    export_evaluation_json(evaluation, sys.stdout)


if __name__ == "__main__":
    main()
