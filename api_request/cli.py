"""CLI entry point for api-request.

Makes a single call and prints the normalized response as JSON:

    api-request GET api.example.com/users/{id} --path-param id=7 --query page=2
    api-request POST https://api.example.com/users --json '{"name": "ada"}' --safe
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from api_request.client import Client
from api_request.config_loader import load_client_config
from api_request.errors import ConfigError, RequestError
from api_request.models import ClientConfig, NormalizedResponse


# --json was not given
_NO_JSON = object()


@dataclass
class CallArgs:
    """Parsed arguments for a single call."""

    method: str
    endpoint: str
    path: str = ""
    path_params: dict[str, str] = field(default_factory=dict)
    query_params: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = ""
    strict: bool = False
    safe: bool = False
    config: Path | None = None
    timeout: float | None = None
    verbose: bool = False


def positive_float(value: str) -> float:
    """Parse and validate a positive float value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive number.
    """
    try:
        result = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number '{value}'.")
    if result <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got {result}.")
    return result


def parse_key_value(value: str) -> tuple[str, str]:
    """Parse 'KEY=VALUE'.

    Raises:
        argparse.ArgumentTypeError: If there is no '=' or the key is empty.
    """
    key, sep, val = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"Expected KEY=VALUE, got '{value}'.")
    return key, val


def parse_header(value: str) -> tuple[str, str]:
    """Parse 'Name: value'.

    Raises:
        argparse.ArgumentTypeError: If there is no ':' or the name is empty.
    """
    name, sep, val = value.partition(":")
    name = name.strip()
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"Expected 'Name: value', got '{value}'.")
    return name, val.strip()


def parse_json(value: str) -> Any:
    """Parse a JSON document given on the command line.

    Raises:
        argparse.ArgumentTypeError: If value is not valid JSON.
    """
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"Invalid JSON: {e}")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="api-request",
        description="Make an HTTP(S) request and print the normalized response as JSON.",
    )
    parser.add_argument("method", help="HTTP method (GET, POST, PUT, PATCH, DELETE, ...)")
    parser.add_argument(
        "endpoint",
        help="Target endpoint; scheme optional (http by default), path may contain {placeholders}",
    )
    parser.add_argument(
        "--path",
        default="",
        help="Path template overriding the endpoint's own path",
    )
    parser.add_argument(
        "--path-param",
        type=parse_key_value,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        dest="path_param",
        help="Value for a {KEY} placeholder (can be repeated)",
    )
    parser.add_argument(
        "--query",
        type=parse_key_value,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Query parameter; repeating a key sends it several times",
    )
    parser.add_argument(
        "--header",
        type=parse_header,
        action="append",
        default=[],
        metavar="'NAME: VALUE'",
        help="Request header (can be repeated)",
    )

    body_group = parser.add_mutually_exclusive_group()
    body_group.add_argument("--data", default=None, help="Raw request body")
    body_group.add_argument(
        "--json",
        type=parse_json,
        default=_NO_JSON,
        dest="json_body",
        metavar="JSON",
        help="Request body given as JSON",
    )

    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail unless the response content-type is application/json",
    )
    parser.add_argument(
        "--safe",
        action="store_true",
        help="Do not fail on status codes >= 400",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to client config YAML",
    )
    parser.add_argument(
        "--timeout",
        type=positive_float,
        default=None,
        help="Transport timeout in seconds (default: none)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log resolved options and dispatch details to stderr",
    )
    return parser


def _collect_query(pairs: list[tuple[str, str]]) -> dict[str, Any]:
    """Group repeated keys into lists, keeping single keys scalar."""
    grouped: dict[str, list[str]] = {}
    for key, value in pairs:
        grouped.setdefault(key, []).append(value)
    return {key: values[0] if len(values) == 1 else values for key, values in grouped.items()}


def parse_args(args: list[str] | None = None) -> CallArgs:
    """Parse command-line arguments and return a CallArgs dataclass.

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    namespace = build_parser().parse_args(args)

    if namespace.json_body is None:
        # A None body serializes to nothing; send the JSON literal instead
        body = "null"
    elif namespace.json_body is not _NO_JSON:
        body = namespace.json_body
    elif namespace.data is not None:
        body = namespace.data
    else:
        body = ""

    return CallArgs(
        method=namespace.method,
        endpoint=namespace.endpoint,
        path=namespace.path,
        path_params=dict(namespace.path_param),
        query_params=_collect_query(namespace.query),
        headers=dict(namespace.header),
        body=body,
        strict=namespace.strict,
        safe=namespace.safe,
        config=namespace.config,
        timeout=namespace.timeout,
        verbose=namespace.verbose,
    )


def _print_response(response: NormalizedResponse) -> None:
    print(response.model_dump_json(indent=2))


def run_call(args: CallArgs) -> int:
    """Make the call described by args. Returns the process exit code."""
    try:
        config = load_client_config(args.config) if args.config else ClientConfig()
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    if args.timeout is not None:
        config = config.model_copy(update={"timeout": args.timeout})

    with Client(config) as client:
        try:
            response = client.call(
                endpoint=args.endpoint,
                method=args.method,
                path=args.path,
                path_params=args.path_params,
                query_params=args.query_params,
                headers=args.headers,
                body=args.body,
                strict_mode=args.strict,
                raise_on_status=False if args.safe else None,
            )
        except RequestError as e:
            print(f"Error: {e}", file=sys.stderr)
            if e.response is not None:
                _print_response(e.response)
            return 1
        except ConfigError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        except ValidationError as e:
            print(f"Invalid request: {e}", file=sys.stderr)
            return 1
        except httpx.HTTPError as e:
            print(f"Transport error: {e}", file=sys.stderr)
            return 1

    _print_response(response)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    try:
        args = parse_args(argv)
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            format="%(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )
        return run_call(args)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
