"""Allow ``python -m teachback.cli``."""

from teachback.cli.main import main

main()
