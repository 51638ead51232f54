"""CLI command for submitting a generation and waiting for its result.

Usage:
    python -m sparklab.cli.generate --engine KEY --prompt TEXT [OPTIONS]

Examples:
    # Generate an image and wait for the result
    python -m sparklab.cli.generate --engine image_engine_a --prompt "a red fox"

    # Pass engine parameters (values are parsed as JSON when possible)
    python -m sparklab.cli.generate --engine image_engine_a --prompt "a red fox" \\
        --param outputCount=3 --param aspectRatio=16:9

    # Video, submit only
    python -m sparklab.cli.generate --engine video_engine_a --type video \\
        --prompt "waves at dusk" --no-wait

Reads SPARKLAB_API_URL and SPARKLAB_ACCESS_TOKEN from the environment.
"""

import asyncio
import json
import sys
from argparse import ArgumentParser, ArgumentTypeError, Namespace
from typing import Any, Optional, Sequence

import httpx
import structlog

from sparklab.client import ClientSettings, PollTimeoutError, SparkLabAPIError, SparkLabClient

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_TIMEOUT = 2


def parse_param(raw: str) -> tuple[str, Any]:
    """Parse key=value; the value is decoded as JSON, falling back to a string."""
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise ArgumentTypeError(f"Expected key=value, got {raw!r}")
    try:
        return key, json.loads(value)
    except ValueError:
        return key, value


def parse_args(argv: Optional[Sequence[str]] = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(description="Submit a SparkLab generation and wait for the result")

    parser.add_argument("--engine", required=True, help="Engine key, e.g. image_engine_a")
    parser.add_argument("--prompt", required=True, help="Prompt text (1-1000 characters)")
    parser.add_argument(
        "--type",
        choices=["image", "video"],
        default="image",
        help="Media type (default: image)",
    )
    parser.add_argument(
        "--param",
        action="append",
        type=parse_param,
        default=[],
        metavar="KEY=VALUE",
        help="Engine parameter, repeatable",
    )
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Print the queued generation and exit without polling",
    )

    return parser.parse_args(argv)


async def async_main(
    argv: Optional[Sequence[str]] = None,
    client: Optional[SparkLabClient] = None,
) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (failed generation or API error), 2 (poll timeout)
    """
    args = parse_args(argv)
    params = dict(args.param) if args.param else None

    if client is None:
        client = SparkLabClient.from_settings(ClientSettings())  # type: ignore[call-arg]

    async with client:
        try:
            created = await client.create_generation(args.engine, args.type, args.prompt, params)
            print(f"Queued generation {created['id']} ({created['engine']}, {created['type']})")

            if args.no_wait:
                return EXIT_OK

            generation = await client.poll_generation(created["id"])

        except SparkLabAPIError as e:
            logger.error("cli.api_error", code=e.code, status_code=e.status_code)
            print(f"Error: {e.message} ({e.code})", file=sys.stderr)
            return EXIT_FAILED

        except httpx.HTTPError as e:
            logger.error("cli.transport_error", error=str(e), error_type=type(e).__name__)
            print(f"Error: could not reach API: {e}", file=sys.stderr)
            return EXIT_FAILED

        except PollTimeoutError as e:
            print(str(e), file=sys.stderr)
            return EXIT_TIMEOUT

    if generation["status"] == "success":
        print(f"Success: {generation['url']}")
        for url in (generation.get("meta") or {}).get("urls", [])[1:]:
            print(f"         {url}")
        return EXIT_OK

    print(f"Generation failed: {generation.get('error') or 'unknown error'}", file=sys.stderr)
    return EXIT_FAILED


def main() -> None:
    """Synchronous entry point for CLI."""
    try:
        sys.exit(asyncio.run(async_main()))
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
