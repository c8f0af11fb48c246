import argparse
import asyncio
import json
import sys
from typing import Any

from dotenv import load_dotenv

from config import FetchConfig, load_config
from fetcher import AsyncFetcher
from models.options import RequestOptions
from models.result import HTTPResult
from redirects import RedirectResolver
from utils.logger import logger

load_dotenv()

COMMANDS = {
    "fetch": "GET a URL and print the response body",
    "head": "HEAD a URL and print status and headers",
    "post": "POST a JSON payload (--data) and print the response body",
    "final-url": "Follow HTTP and meta refresh redirects and print the final URL",
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    help_text = "Command to run:\n"
    for name, description in COMMANDS.items():
        help_text += f"  {name}: {description}\n"

    parser = argparse.ArgumentParser(
        description="Outbound HTTP fetcher with redirect resolution",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("command", choices=list(COMMANDS.keys()), help=help_text)
    parser.add_argument("url", help="URL to request")
    parser.add_argument(
        "--timeout", type=int, default=0, help="Timeout in seconds (default: configured value)"
    )
    parser.add_argument("--accept", type=str, default="", help="Value for the Accept header")
    parser.add_argument("--cookie-jar", type=str, default="", help="File used as cookie jar")
    parser.add_argument(
        "--max-size", type=int, default=None, help="Refuse responses declaring a larger Content-Length"
    )
    parser.add_argument(
        "--header",
        action="append",
        default=[],
        metavar="NAME:VALUE",
        help="Extra request header (repeatable)",
    )
    parser.add_argument("--data", type=str, default="{}", help="JSON payload for post")
    parser.add_argument(
        "--block",
        nargs="+",
        default=[],
        help="Additional blocked domains for this run",
    )

    return parser.parse_args(argv)


def parse_headers(values: list[str]) -> dict[str, str]:
    headers = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise ValueError(f"Malformed header '{value}', expected NAME:VALUE")
        headers[name.strip()] = content.strip()
    return headers


def build_config(args: argparse.Namespace) -> FetchConfig:
    config = load_config()
    if args.block:
        config = config.with_overrides(blocked_domains=set(config.blocked_domains) | set(args.block))
    return config


def print_result(result: HTTPResult, show_body: bool = True) -> None:
    print(f"{result.status_code} {result.url}")
    for name, values in result.headers.items():
        for value in values:
            print(f"{name}: {value}")
    if result.error_message:
        print(f"Error: {result.error_message}", file=sys.stderr)
    if show_body and result.body:
        print()
        sys.stdout.write(result.text)


async def run(args: argparse.Namespace) -> int:
    """Run one command and return the process exit code."""
    config = build_config(args)

    if args.command == "final-url":
        resolver = RedirectResolver(config)
        print(await resolver.final_url(args.url))
        return 0

    fetcher = AsyncFetcher(config)

    if args.command == "post":
        payload: Any = json.loads(args.data)
        result = await fetcher.post(args.url, payload, parse_headers(args.header), args.timeout)
    else:
        options = RequestOptions(
            accept_content=args.accept or None,
            cookie_jar_path=args.cookie_jar or None,
            extra_headers=parse_headers(args.header),
            timeout_seconds=args.timeout if args.timeout > 0 else None,
            max_content_length=args.max_size,
        )
        if args.command == "head":
            result = await fetcher.head(args.url, options)
        else:
            result = await fetcher.get(args.url, options)

    print_result(result, show_body=args.command != "head")
    return 1 if result.is_error else 0


def main(argv: list[str] | None = None) -> None:
    """Entry point of the script."""
    args = parse_args(argv)
    try:
        exit_code = asyncio.run(run(args))
    except ValueError as e:
        logger.error(f"Invalid arguments: {e}")
        exit_code = 2
    except KeyboardInterrupt:
        logger.warning("Interrupted by user.")
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
