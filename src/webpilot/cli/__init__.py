"""
WebPilot CLI - talk to a language model that drives a browser.

Usage:
    webpilot --help
    webpilot ai "summarize the headlines" --url https://news.ycombinator.com
    webpilot chat --profile work
"""

import click

from .ai import ai, chat


@click.group()
@click.version_option(package_name="webpilot")
def main():
    """WebPilot - a conversational browser agent.

    Prompts are answered by the configured model, which may load pages,
    inspect elements and search the web through the browser tools.
    """
    pass


# Register commands
main.add_command(ai)
main.add_command(chat)


if __name__ == "__main__":
    main()
