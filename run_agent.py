"""Command-line entry point: run one task with the web agent."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Optional

from agent import WebAgent
from agent_types import TaskExecutionResult, TaskState
from browser import PlaywrightBrowser
from cancellation import AbortSignal
from config import PilotConfig, load_config
from events import AgentEvent, AgentStatus, EventBus, NavigationRetry, TaskStarted
from exceptions import PilotError
from generation import OpenAIGenerator
from search import create_search_provider
from snapshot_compressor import SnapshotCompressor

INTERRUPTED_EXIT_CODE = 130


def build_agent(config: PilotConfig, logger: logging.Logger) -> WebAgent:
    """Wire a Playwright browser and an OpenAI-compatible model into an agent."""
    browser_config = config.browser
    browser = PlaywrightBrowser(
        browser_type=browser_config.browser,
        headless=browser_config.headless,
        viewport_width=browser_config.viewport_width,
        viewport_height=browser_config.viewport_height,
        slow_mo=browser_config.slow_mo,
        bypass_csp=browser_config.bypass_csp,
    )
    agent_config = config.agent
    generator = OpenAIGenerator(
        model=agent_config.model,
        api_key=agent_config.api_key,
        base_url=agent_config.base_url,
        temperature=agent_config.temperature,
        max_tokens=agent_config.max_tokens,
    )
    compressor = SnapshotCompressor(
        filtered_prefixes=config.compression.filtered_prefixes,
        enable_deduplication=config.compression.enable_deduplication,
    )
    event_bus = EventBus()
    event_bus.subscribe_all(_console_printer(logger))
    return WebAgent(
        browser,
        generator,
        config=agent_config,
        event_bus=event_bus,
        compressor=compressor,
        navigation=config.navigation.to_retry_config(),
        search=create_search_provider(agent_config.search_provider),
    )


def _console_printer(logger: logging.Logger):
    def on_event(event: AgentEvent) -> None:
        if isinstance(event, TaskStarted):
            logger.info(f"Plan: {event.plan}")
            for item in event.action_items:
                logger.info(f"  - {item}")
        elif isinstance(event, AgentStatus):
            logger.info(event.message)
        elif isinstance(event, NavigationRetry):
            logger.warning(f"Retrying navigation to {event.url} ({event.attempt}/{event.max_attempts})")
        else:
            logger.debug(f"{event.name}: {event.to_dict()}")

    return on_event


def _parse_data(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise PilotError(f"--data is not valid JSON: {e.msg}") from e


def print_result(result: TaskExecutionResult) -> None:
    print("\n" + "=" * 60)
    print(f"Status: {result.status.upper()}")
    print(f"Iterations: {result.stats.iterations}, actions: {result.stats.actions}, "
          f"duration: {result.stats.duration_ms / 1000:.1f}s")
    if result.final_answer:
        print(f"\nFinal answer:\n{result.final_answer}")
    if result.extracted_data:
        print("\nExtracted data:")
        for item in result.extracted_data:
            print(f"  - {item}")
    print("=" * 60)


async def run_from_cli_args(args: argparse.Namespace, logger: logging.Logger) -> int:
    config = load_config(
        Path(args.config) if args.config else None,
        cli_overrides={
            "browser": args.browser,
            "headful": True if args.headful else None,
            "verbose": args.verbose or None,
            "debug": args.verbose or None,
            "model": args.model,
            "base_url": args.base_url,
            "max_iterations": args.max_iterations,
            "search_provider": args.search_provider,
        },
    )
    data = _parse_data(args.data)
    agent = build_agent(config, logger)

    abort = AbortSignal()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, abort.abort, "Interrupted by user")
    except NotImplementedError:
        logger.debug("Signal handlers unsupported on this platform; Ctrl+C stops without cleanup")

    try:
        result = await agent.execute(args.task, starting_url=args.url, data=data, abort=abort)
    finally:
        loop.remove_signal_handler(signal.SIGINT)
        await agent.close()

    print_result(result)
    if result.state == TaskState.ABORTED and abort.aborted:
        return INTERRUPTED_EXIT_CODE
    return 0 if result.success else 1


def _build_arg_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Complete a natural-language task in a real browser with an LLM agent.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --task "Find the price of the cheapest flight to Oslo"
  %(prog)s --task "Sign up for the newsletter" --url https://example.com --headful
  %(prog)s --task "Fill the form" --data '{"name": "Ada"}' --model gpt-4.1
  %(prog)s --task "Who maintains the requests library?" --search-provider duckduckgo
        """,
    )

    task_group = parser.add_argument_group("Task")
    task_group.add_argument("--task", required=True, help="What the agent should accomplish")
    task_group.add_argument("--url", help="Starting URL (the planner picks one when omitted)")
    task_group.add_argument("--data", help="JSON data the task may use, e.g. form values")

    browser_group = parser.add_argument_group("Browser Options")
    browser_group.add_argument(
        "--browser",
        choices=["chromium", "firefox", "webkit"],
        help="Browser engine to use (default: chromium)",
    )
    browser_group.add_argument(
        "--headful",
        action="store_true",
        help="Run browser in headful mode (show GUI)",
    )

    model_group = parser.add_argument_group("Model Options")
    model_group.add_argument("--model", help="Model name (default: PILOT_MODEL or gpt-4.1-mini)")
    model_group.add_argument("--base-url", help="OpenAI-compatible API base URL")
    model_group.add_argument("--max-iterations", type=int, metavar="N", help="Iteration budget (default: 50)")
    model_group.add_argument(
        "--search-provider",
        choices=["none", "duckduckgo", "google", "bing"],
        help="Enable the web_search tool with this engine (default: none)",
    )
    model_group.add_argument(
        "--config",
        help="Path to config file (default: config.json if exists)",
    )

    output_group = parser.add_argument_group("Output Options")
    output_group.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output and compression stats",
    )
    output_group.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress non-essential output",
    )
    return parser


def main() -> None:
    """Main entry point."""
    parser = _build_arg_parser()
    args = parser.parse_args()

    if args.quiet:
        log_level = logging.WARNING
    elif args.verbose:
        log_level = logging.DEBUG
    else:
        log_level = logging.INFO

    logging.basicConfig(
        level=log_level,
        format="[%(levelname)s] %(message)s" if not args.verbose else "[%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger("aria_pilot")

    try:
        exit_code = asyncio.run(run_from_cli_args(args, logger))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        exit_code = INTERRUPTED_EXIT_CODE
    except PilotError as exc:
        logger.error(f"Error: {exc}")
        exit_code = 1
    except Exception as exc:
        logger.exception(f"Unexpected error: {exc}")
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
