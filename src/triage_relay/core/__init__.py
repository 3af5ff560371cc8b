"""Core triage logic: policy, classification, decision, dedup and dispatch."""

from .classifier import ClassifierGateway, parse_classification
from .decision import AUTO_ACT_THRESHOLD, OFFER_THRESHOLD, decide
from .dedup import DedupStore, TTLDedupCache
from .dispatcher import Dispatcher
from .policy_store import PolicyStore
from .relay import Admission, TriageRelay, create_relay

__all__ = [
    "AUTO_ACT_THRESHOLD",
    "OFFER_THRESHOLD",
    "Admission",
    "ClassifierGateway",
    "DedupStore",
    "Dispatcher",
    "PolicyStore",
    "TTLDedupCache",
    "TriageRelay",
    "create_relay",
    "decide",
    "parse_classification",
]
