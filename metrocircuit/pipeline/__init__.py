"""Resumable ingestion pipeline for MetroCircuit documents."""

from metrocircuit.pipeline.context import InvocationContext
from metrocircuit.pipeline.ingestion_pipeline import IngestionStateMachine

__all__ = [
    "IngestionStateMachine",
    "InvocationContext",
]
