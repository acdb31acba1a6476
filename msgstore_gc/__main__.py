"""Allow ``python -m msgstore_gc``."""

from msgstore_gc.main import cli

cli()
