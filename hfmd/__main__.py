"""
Console-script entry point: runs the CLI and renders uncaught errors.
"""

import logging
import sys

from rich.console import Console

from hfmd.cli.app import app
from hfmd.cli.formatters import format_error_with_suggestions
from hfmd.exceptions import HfmdError


def main() -> None:
    console = Console(stderr=True)
    try:
        app()
    except HfmdError as e:
        console.print(format_error_with_suggestions(e))
        sys.exit(1)
    except Exception as e:
        console.print(format_error_with_suggestions(e, {"type": "Unexpected"}))
        logging.getLogger("hfmd").debug("Full traceback:", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
