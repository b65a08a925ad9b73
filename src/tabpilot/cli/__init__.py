"""
tabpilot CLI - drive a browser tab toward a goal from the command line.

Usage:
    tabpilot --help
    tabpilot run "search for running shoes" --url https://example.com
    tabpilot keys
"""

import click

from .run import keys, run


@click.group()
@click.version_option(package_name="tabpilot")
def main():
    """tabpilot - browser automation driven by a vision model and a reasoning model."""
    pass


main.add_command(run)
main.add_command(keys)


if __name__ == "__main__":
    main()
