"""Query pipeline agents and the service that chains them."""

from metrocircuit.services.query.answer_drafter import AnswerDrafter
from metrocircuit.services.query.query_service import QueryService
from metrocircuit.services.query.reranker_agent import RerankerAgent
from metrocircuit.services.query.router_agent import RouterAgent
from metrocircuit.services.query.verification_agent import VerificationAgent

__all__ = [
    "AnswerDrafter",
    "QueryService",
    "RerankerAgent",
    "RouterAgent",
    "VerificationAgent",
]
