"""Allow ``python -m prmetrics``."""

from .cli import run

run()
