"""Allow ``python -m gradleguard``."""

from .cli import main

main()
