"""Command-line tools for MetroCircuit.

- ``python -m metrocircuit.cli``: sync, process, embed, status and query
  commands driven through the action dispatcher.
"""
