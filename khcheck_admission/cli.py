"""Command line utilities for khcheck-admission."""

from __future__ import annotations

import argparse
import logging

from .config import ServerConfig, env_default
from .server import WebhookServer
from .validator import AdmissionValidator
from .webhook_config import generate_webhook_configuration_yaml

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="khcheck-admission")
    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the KuberhealthyCheck validating admission webhook.",
    )
    serve_parser.add_argument("--host", default=env_default("host", "0.0.0.0"))
    serve_parser.add_argument("--port", type=int, default=int(env_default("port", 8443)))
    serve_parser.add_argument(
        "--path",
        default=env_default("path", "/validate"),
        help="Path the API server posts AdmissionReviews to.",
    )
    serve_parser.add_argument(
        "--cert-file",
        default=env_default("cert_file"),
        help="PEM certificate for TLS.",
    )
    serve_parser.add_argument(
        "--key-file",
        default=env_default("key_file"),
        help="PEM private key for TLS.",
    )
    serve_parser.add_argument(
        "--log-level",
        default=env_default("log_level", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
    )

    generate_parser = subparsers.add_parser(
        "generate-webhook",
        help="Generate the ValidatingWebhookConfiguration YAML for khchecks.",
    )
    generate_parser.add_argument("--url", required=True, help="Webhook service URL.")
    generate_parser.add_argument(
        "--name",
        default="khcheck-admission",
        help="metadata.name of the generated configuration.",
    )
    generate_parser.add_argument(
        "--ca-bundle",
        default=None,
        help="Optional base64-encoded CA bundle.",
    )
    generate_parser.add_argument(
        "--failure-policy",
        choices=["Fail", "Ignore"],
        default="Fail",
    )
    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)


def _serve(args: argparse.Namespace) -> int:
    configure_logging(args.log_level)
    if bool(args.cert_file) != bool(args.key_file):
        logging.getLogger(__name__).error("--cert-file and --key-file must be given together")
        return 2

    config = ServerConfig(
        host=args.host,
        port=args.port,
        path=args.path,
        cert_file=args.cert_file,
        key_file=args.key_file,
        log_level=args.log_level,
    )
    WebhookServer(config, AdmissionValidator()).serve_forever()
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        return _serve(args)

    if args.command == "generate-webhook":
        print(
            generate_webhook_configuration_yaml(
                url=args.url,
                name=args.name,
                ca_bundle=args.ca_bundle,
                failure_policy=args.failure_policy,
            ),
            end="",
        )
        return 0

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
