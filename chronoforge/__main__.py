"""Allow ``python -m chronoforge <Organization>``."""

from chronoforge.orchestrator import cli

cli()
