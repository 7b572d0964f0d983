"""
Prompt commands.

- ai: answer a single prompt and exit
- chat: interactive loop until EOF or ``exit``
"""

import asyncio
import dataclasses
import logging
import sys
from typing import Optional, Tuple

import click

from webpilot.agents.exceptions import WebPilotError
from webpilot.agents.session import ChatSession
from webpilot.agents.utils import init_logging
from webpilot.config import DEFAULT_HISTORY_WINDOW, SessionConfig
from webpilot.environment.browser_state import BrowserState
from webpilot.environment.registry import ToolRegistry
from webpilot.environment.search_tools import DuckDuckGoSearchClient
from webpilot.environment.web_tools import register_browser_tools
from webpilot.models.adapters.factory import build_provider
from webpilot.models.profile import ProfileLoader

logger = logging.getLogger(__name__)

EXIT_COMMANDS = ("exit", "quit")


@dataclasses.dataclass
class Runtime:
    """Everything one CLI invocation owns; closed together at the end."""

    session: ChatSession
    browser: BrowserState
    search_client: DuckDuckGoSearchClient

    async def aclose(self) -> None:
        await self.session.aclose()
        await self.search_client.aclose()
        if self.browser.is_open:
            await self.browser.close()


async def build_runtime(
    profile_name: str = "",
    history_window: int = DEFAULT_HISTORY_WINDOW,
    url: str = "",
    headed: bool = False,
    config_path: Optional[str] = None,
) -> Runtime:
    """Resolve the model profile, launch the browser and wire the session."""
    profile = ProfileLoader(config_path=config_path).load(profile_name)
    config = SessionConfig(history_window=history_window, headless=not headed)
    provider = build_provider(profile, request_timeout=config.request_timeout)

    browser = await BrowserState.create(config)
    search_client = DuckDuckGoSearchClient()
    registry = ToolRegistry()
    register_browser_tools(registry, browser, search_client=search_client, config=config)

    if url:
        await browser.load_url(url)

    session = ChatSession(
        provider,
        registry,
        browser=browser,
        config=config,
        base_prompt=profile.system_prompt,
    )
    logger.info(f"Using model {profile.model} via {profile.provider}")
    return Runtime(session=session, browser=browser, search_client=search_client)


def _common_options(func):
    func = click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr")(func)
    func = click.option("--headed", is_flag=True, help="Show the browser window")(func)
    func = click.option("--url", default="", help="Load this page before the first prompt")(func)
    func = click.option("--profile", default="", help="Model profile name from ~/.webpilot/ai-profiles.json")(func)
    func = click.option(
        "--history-window",
        type=click.IntRange(min=0),
        default=DEFAULT_HISTORY_WINDOW,
        show_default=True,
        help="Messages kept in history (0 keeps everything)",
    )(func)
    return func


def _fail(error: Exception) -> None:
    click.echo(f"Error: {error}", err=True)
    suggestion = getattr(error, "suggestion", None)
    if suggestion:
        click.echo(suggestion, err=True)
    sys.exit(1)


@click.command()
@click.argument("prompt", nargs=-1, required=True)
@_common_options
def ai(prompt: Tuple[str, ...], history_window: int, profile: str, url: str, headed: bool, verbose: bool):
    """Answer a single PROMPT using the browser tools.

    \b
    Examples:
        webpilot ai "what is on this page?" --url https://example.com
        webpilot ai find the latest python release --profile work
    """
    init_logging(logging.DEBUG if verbose else logging.WARNING)
    text = " ".join(prompt)

    async def run() -> str:
        runtime = await build_runtime(profile, history_window, url, headed)
        try:
            return await runtime.session.send(text)
        finally:
            await runtime.aclose()

    try:
        reply = asyncio.run(run())
    except WebPilotError as e:
        _fail(e)
        return
    click.echo(reply)


@click.command()
@_common_options
def chat(history_window: int, profile: str, url: str, headed: bool, verbose: bool):
    """Start an interactive session.

    Type ``/reset`` to clear the conversation and ``exit`` (or Ctrl-D) to quit.
    """
    init_logging(logging.DEBUG if verbose else logging.WARNING)

    with asyncio.Runner() as runner:
        try:
            runtime = runner.run(build_runtime(profile, history_window, url, headed))
        except WebPilotError as e:
            _fail(e)
            return

        try:
            while True:
                try:
                    line = input("webpilot> ").strip()
                except EOFError:
                    click.echo()
                    break
                if not line:
                    continue
                if line.lower() in EXIT_COMMANDS:
                    break
                if line == "/reset":
                    runtime.session.reset()
                    click.echo("conversation cleared")
                    continue
                try:
                    reply = runner.run(runtime.session.send(line))
                except WebPilotError as e:
                    click.echo(f"Error: {e}", err=True)
                    continue
                click.echo(reply)
        finally:
            runner.run(runtime.aclose())
