"""Services package for the recognition pipeline."""

from .region_detector import RegionDetector
from .presence_gate import PresenceGate
from .similarity_engine import SimilarityEngine
from .match_classifier import MatchClassifier
from .matching_service import MatchingService
from .result_smoother import CoinResultSmoother
from .stabilizer import TemporalStabilizer
from .template_manager import TemplateManager, serialize_template_set, deserialize_template_set
from .profile_store import ProfileStore
from .recognition_service import CoinRecognizer
from .live_session import LiveSession

__all__ = [
    "RegionDetector", "PresenceGate", "SimilarityEngine", "MatchClassifier",
    "MatchingService", "CoinResultSmoother", "TemporalStabilizer",
    "TemplateManager", "serialize_template_set", "deserialize_template_set",
    "ProfileStore", "CoinRecognizer", "LiveSession",
]
