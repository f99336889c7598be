"""CLI: pairstream serve, config validate, summarize, prompts."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from ..config import load_config, validate_config
from ..core.models import ProviderRegistry
from ..core.prompts import PromptLibrary
from ..core.summarizer import BatchSummarizer
from ..core.summary_cache import SummaryCache, summary_cache_key
from ..core.usage_tracker import UsageTracker
from ..types import Message


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def cmd_config_validate(args):
    """Validate config file."""
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    errors = validate_config(config)
    if errors:
        print("Config validation errors:")
        for err in errors:
            print(f"  - {err}")
        sys.exit(1)
    else:
        print("Config is valid.")
        print(f"  Default: {config.default_provider} ({config.default_model})")
        print(f"  Providers: {', '.join(config.providers)}")
        print(f"  Summary batch size: {config.summarization.batch_size}")
        print(f"  Summary cache TTL: {config.summarization.cache_ttl_seconds:g}s ({config.summarization.cache_scope} scope)")
        print(f"  Max response segments: {config.continuation.max_response_segments}")
        print(f"  Agents: {len(config.agents)}")


def cmd_serve(args):
    """Start the chat server."""
    import uvicorn

    from ..proxy.server import create_app

    # Suppress CancelledError tracebacks on shutdown.  Uvicorn force-cancels
    # streaming responses after the graceful-shutdown timeout, which raises
    # CancelledError inside Starlette internals.
    class _SuppressCancelled(logging.Filter):
        def filter(self, record: logging.LogRecord) -> bool:
            if record.exc_info:
                exc_type = record.exc_info[0]
                if exc_type is asyncio.CancelledError:
                    return False
            return True

    logging.getLogger("uvicorn.error").addFilter(_SuppressCancelled())

    config = load_config(args.config)
    errors = validate_config(config)
    if errors:
        for err in errors:
            print(f"Config error: {err}", file=sys.stderr)
        sys.exit(1)

    host = args.host or config.server.host
    port = args.port or config.server.port
    log_level = args.log_level or config.server.log_level
    _setup_logging(log_level)

    app = create_app(config)
    print(f"pairstream on {host}:{port} (default {config.default_provider}/{config.default_model})")
    uvicorn.run(
        app, host=host, port=port, log_level=log_level,
        timeout_graceful_shutdown=2,
    )


def _load_transcript(path: Path) -> list[Message]:
    raw = json.loads(path.read_text())
    if isinstance(raw, dict):
        raw = raw.get("messages", [])
    if not isinstance(raw, list):
        raise ValueError("Transcript must be a list of messages or an object with 'messages'")
    return [Message.from_dict(m) for m in raw]


def cmd_summarize(args):
    """Summarize a saved conversation transcript."""
    config = load_config(args.config)
    _setup_logging(args.log_level or "warning")
    try:
        messages = _load_transcript(Path(args.transcript))
    except (OSError, ValueError) as e:
        print(f"Error reading transcript: {e}", file=sys.stderr)
        sys.exit(1)
    if not messages:
        print("Transcript has no messages.", file=sys.stderr)
        sys.exit(1)

    registry = ProviderRegistry(config)
    cache = SummaryCache(ttl_seconds=config.summarization.cache_ttl_seconds)
    summarizer = BatchSummarizer(registry, cache, config.summarization, config)
    usage = UsageTracker()
    key = summary_cache_key(args.prompt_id, messages, config.summarization.cache_scope)

    try:
        summary = asyncio.run(summarizer.summarize(messages, key, usage))
    except Exception as e:
        print(f"Summarization failed: {e}", file=sys.stderr)
        sys.exit(1)

    print(summary)
    total = usage.total
    print(
        f"\n[{usage.calls()} call(s), {total.prompt_tokens:,} prompt + "
        f"{total.completion_tokens:,} completion tokens]",
        file=sys.stderr,
    )


def cmd_prompts(args):
    """List available system prompts."""
    config = load_config(args.config)
    library = PromptLibrary(custom=config.prompts.custom, default_prompt_id=config.prompts.default_prompt_id)
    for prompt in library.list_prompts():
        marker = "*" if prompt["id"] == config.prompts.default_prompt_id else " "
        print(f"{marker} {prompt['id']:<20} {prompt['label']:<20} {prompt['description']}")


def main():
    parser = argparse.ArgumentParser(
        prog="pairstream",
        description="Conversation streaming and context optimization for AI pair programming",
    )
    parser.add_argument("--config", "-c", help="Path to config file")
    parser.add_argument("--log-level", help="Logging level (debug, info, warning)")

    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Start the chat server")
    serve_parser.add_argument("--host", help="Bind address (default from config)")
    serve_parser.add_argument("--port", type=int, help="Port (default from config)")

    summarize_parser = subparsers.add_parser("summarize", help="Summarize a transcript JSON file")
    summarize_parser.add_argument("transcript", help="Path to a JSON list of messages")
    summarize_parser.add_argument("--prompt-id", help="Prompt id used as the cache key")

    subparsers.add_parser("prompts", help="List available system prompts")

    config_parser = subparsers.add_parser("config", help="Config operations")
    config_sub = config_parser.add_subparsers(dest="config_command")
    config_sub.add_parser("validate", help="Validate config file")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "serve":
        cmd_serve(args)
    elif args.command == "summarize":
        cmd_summarize(args)
    elif args.command == "prompts":
        cmd_prompts(args)
    elif args.command == "config":
        if args.config_command == "validate":
            cmd_config_validate(args)
        else:
            config_parser.print_help()
            sys.exit(1)


if __name__ == "__main__":
    main()
