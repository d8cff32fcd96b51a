import sys

from portgen.logging_config import configure_logging


def main() -> None:
    configure_logging()

    from portgen.cli import run

    sys.exit(run())
