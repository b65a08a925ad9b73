"""
Automation commands:
- run: launch a browser and automate one tab toward a goal
- keys: list key names accepted by the press action
"""

import asyncio
import logging
import sys
from typing import Optional

import click

from tabpilot.agents.exceptions import ConfigurationError, TabPilotError
from tabpilot.agents.orchestrator import SessionOrchestrator
from tabpilot.agents.session import SessionStatus
from tabpilot.agents.utils import init_logging
from tabpilot.coordination.config import AutomationConfig, StatusConfig, VerbosityLevel
from tabpilot.coordination.status import CLIChannel, StatusManager
from tabpilot.environment.browser import BrowserEnvironment
from tabpilot.environment.keys import supported_key_names
from tabpilot.models.models import ModelConfig
from tabpilot.models.reasoning import ReasoningClient
from tabpilot.models.vision import VisionClient


@click.command()
@click.argument("goal")
@click.option("--url", default=None, help="Page to open before starting")
@click.option(
    "--protocol",
    type=click.Choice(["tools", "json"]),
    default="tools",
    show_default=True,
    help="How the reasoning model decides: tool calls or one JSON decision per iteration",
)
@click.option("--max-iterations", type=int, default=50, show_default=True, help="Iteration cap")
@click.option("--headless/--headed", default=False, show_default=True, help="Hide the browser window")
@click.option("--channel", default=None, help="Browser channel, e.g. 'chrome' (bundled Chromium if omitted)")
@click.option("--no-stream", is_flag=True, help="Wait for whole vision responses instead of streaming")
@click.option("-v", "--verbose", is_flag=True, help="Show vision output, reasoning and debug logs")
@click.option("-q", "--quiet", is_flag=True, help="Only show the final outcome")
def run(
    goal: str,
    url: Optional[str],
    protocol: str,
    max_iterations: int,
    headless: bool,
    channel: Optional[str],
    no_stream: bool,
    verbose: bool,
    quiet: bool,
):
    """Automate a browser tab until GOAL is reached.

    Model endpoints and keys are read from the environment (VISION_API_KEY or
    PERCEPTRON_API_KEY, REASONING_API_KEY or OPENAI_API_KEY, and optionally
    VISION_MODEL, VISION_API_URL, REASONING_MODEL, REASONING_API_URL).

    \b
    Examples:
        tabpilot run "find the opening hours" --url https://example.com
        tabpilot run "search for running shoes" --protocol json -v
    """
    init_logging(logging.DEBUG if verbose else logging.WARNING)

    verbosity = VerbosityLevel.QUIET if quiet else VerbosityLevel.VERBOSE if verbose else VerbosityLevel.NORMAL
    status_config = StatusConfig.from_verbosity(verbosity)

    try:
        config = AutomationConfig(
            max_iterations=max_iterations,
            protocol=protocol,
            stream_vision=not no_stream,
        )
        vision_config = ModelConfig.vision_from_env()
        reasoning_config = ModelConfig.reasoning_from_env()
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)

    try:
        status = asyncio.run(
            _run(goal, url, config, status_config, vision_config, reasoning_config, headless, channel)
        )
    except TabPilotError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)

    if status == SessionStatus.ERROR:
        sys.exit(1)


async def _run(
    goal: str,
    url: Optional[str],
    config: AutomationConfig,
    status_config: StatusConfig,
    vision_config: ModelConfig,
    reasoning_config: ModelConfig,
    headless: bool,
    channel: Optional[str],
) -> SessionStatus:
    vision = VisionClient(vision_config, stream=config.stream_vision)
    reasoning = ReasoningClient(reasoning_config)

    status_manager = StatusManager(status_config)
    status_manager.add_channel(CLIChannel(status_config))

    env = await BrowserEnvironment.create(
        headless=headless,
        channel=channel,
        keystroke_delay=config.keystroke_delay,
        ready_timeout=config.ready_timeout,
    )
    orchestrator = SessionOrchestrator.from_environment(env, vision, reasoning, status_manager, config)

    try:
        tab_id = await env.new_tab(url)
        session = await orchestrator.run(tab_id, goal)

        while session.status == SessionStatus.WAITING_FOR_USER:
            reply = await asyncio.to_thread(click.prompt, "Your reply", default="", show_default=False)
            if not reply.strip():
                break
            session = await orchestrator.run(session.tab_id, reply)

        if session.status == SessionStatus.COMPLETED and session.result:
            click.echo(session.result)
        return session.status
    finally:
        await orchestrator.shutdown()
        await env.close()


@click.command()
def keys():
    """List key names accepted by the press action.

    Combine keys with '+', e.g. ControlOrMeta+a or Shift+Tab. ControlOrMeta
    is Meta on macOS and Control elsewhere.
    """
    for name in supported_key_names():
        click.echo(name)
