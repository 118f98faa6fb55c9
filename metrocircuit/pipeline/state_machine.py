"""Allowed ingestion phase moves and the phase → document status mapping.

``ERROR`` and ``INDEXED`` are terminal within a run.  A new process request
starts a new run from ``NOT_STARTED`` rather than moving out of them.
"""

from __future__ import annotations

from types import MappingProxyType

from metrocircuit.models.document import DocumentStatus
from metrocircuit.models.ingestion import IngestionPhase
from metrocircuit.utils.errors import PipelineError

P = IngestionPhase

TRANSITIONS: MappingProxyType[IngestionPhase, frozenset[IngestionPhase]] = MappingProxyType(
    {
        P.NOT_STARTED: frozenset({P.EXTRACTING, P.ERROR}),
        P.EXTRACTING: frozenset({P.PAGINATING, P.ERROR}),
        P.PAGINATING: frozenset({P.BATCHING, P.ERROR}),
        # BATCHING loops on itself once per partial step.
        P.BATCHING: frozenset({P.BATCHING, P.INDEXED, P.ERROR}),
        P.INDEXED: frozenset(),
        P.ERROR: frozenset(),
    }
)

PHASE_STATUS: MappingProxyType[IngestionPhase, DocumentStatus] = MappingProxyType(
    {
        P.NOT_STARTED: DocumentStatus.UPLOADED,
        P.EXTRACTING: DocumentStatus.EXTRACTING,
        P.PAGINATING: DocumentStatus.PROCESSING,
        P.BATCHING: DocumentStatus.PROCESSING,
        P.INDEXED: DocumentStatus.INDEXED,
        P.ERROR: DocumentStatus.ERROR,
    }
)

_unmapped = set(IngestionPhase) - set(PHASE_STATUS) | set(IngestionPhase) - set(TRANSITIONS)
if _unmapped:
    raise RuntimeError(f"Ingestion phases missing from the phase tables: {sorted(_unmapped)}")


def can_transition(current: IngestionPhase, target: IngestionPhase) -> bool:
    return target in TRANSITIONS[current]


def transition(current: IngestionPhase, target: IngestionPhase) -> IngestionPhase:
    """Return *target* if the move from *current* is allowed.

    Raises
    ------
    PipelineError
        On a move not listed in :data:`TRANSITIONS`.
    """
    if not can_transition(current, target):
        raise PipelineError(f"Invalid ingestion transition {current.value} -> {target.value}")
    return target


def status_for(phase: IngestionPhase) -> DocumentStatus:
    return PHASE_STATUS[phase]


def is_terminal(phase: IngestionPhase) -> bool:
    return not TRANSITIONS[phase]
