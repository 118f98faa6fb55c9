"""Allow ``python -m metrocircuit.cli`` execution."""

from metrocircuit.cli.ingest import main

main()
