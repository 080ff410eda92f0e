import logging
import sys

HANDLER_NAME = "planner"


def setup_logging(level: str = "INFO") -> None:
    """
    Configure root logging with a single stderr handler.
    Repeated calls replace that handler instead of stacking; handlers installed
    by anything else (the server, the test runner) are left in place.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(root.handlers):
        if handler.get_name() == HANDLER_NAME:
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root.addHandler(handler)

    logging.captureWarnings(True)
