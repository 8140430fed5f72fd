"""Embeds coin crops and scores them against reference templates."""
import itertools
import logging
import math
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from ..backends.base_backend import EmbeddingBackend
from ..backends.descriptor_backend import GradientDescriptorBackend
from ..core.entities import MatchOutcome, ReferenceTemplateSet
from ..core.exceptions import BackendError
from ..utils.image_utils import color_variants, rotated_variants
from .match_classifier import MatchClassifier

logger = logging.getLogger(__name__)

TOP_K = 3


def top_k_average(distances: Sequence[float], k: int = TOP_K) -> float:
    """Mean of the ``k`` smallest distances (fewer if not enough)."""
    finite = sorted(d for d in distances if math.isfinite(d))
    if not finite:
        return math.inf
    nearest = finite[:k]
    return sum(nearest) / len(nearest)


def preferred(lhs: MatchOutcome, rhs: MatchOutcome) -> MatchOutcome:
    """Decisive beats uncertain beats invalid; ties go to the higher confidence."""
    if lhs.side.rank != rhs.side.rank:
        return lhs if lhs.side.rank < rhs.side.rank else rhs
    return lhs if lhs.confidence >= rhs.confidence else rhs


def pairwise_within(vectors: Sequence[np.ndarray], metric: Callable) -> List[float]:
    return [metric(a, b) for a, b in itertools.combinations(vectors, 2)]


def pairwise_across(first: Sequence[np.ndarray], second: Sequence[np.ndarray], metric: Callable) -> List[float]:
    return [metric(a, b) for a in first for b in second]


class SimilarityEngine:
    """Owns the two representations and knows how to compare them."""

    def __init__(self, descriptor_backend: Optional[GradientDescriptorBackend] = None,
                 feature_print_backend: Optional[EmbeddingBackend] = None):
        self.descriptor_backend = descriptor_backend or GradientDescriptorBackend()
        self.feature_print_backend = feature_print_backend

    @property
    def feature_print_name(self) -> Optional[str]:
        return self.feature_print_backend.name if self.feature_print_backend else None

    @staticmethod
    def embed_many(backend: EmbeddingBackend, images: Sequence[np.ndarray]) -> List[np.ndarray]:
        """Embed each image, skipping the ones the backend cannot handle."""
        vectors = []
        for image in images:
            try:
                vectors.append(backend.embed(image))
            except BackendError as e:
                logger.debug(f"{backend.name} embedding skipped: {e}")
        return vectors

    @staticmethod
    def embed_one(backend: EmbeddingBackend, image: np.ndarray) -> Optional[np.ndarray]:
        try:
            return backend.embed(image)
        except BackendError as e:
            logger.debug(f"{backend.name} embedding skipped: {e}")
            return None

    # -- descriptor path --------------------------------------------------

    def descriptor_variants(self, prepared: np.ndarray) -> List[np.ndarray]:
        return rotated_variants(prepared) + color_variants(prepared)[1:]

    def descriptor_scores(self, vector: np.ndarray,
                          template_set: ReferenceTemplateSet) -> Tuple[float, float]:
        """Best cosine similarity of one query vector to each face."""
        similarity = self.descriptor_backend.similarity
        front = max(similarity(vector, t) for t in template_set.front_descriptors)
        back = max(similarity(vector, t) for t in template_set.back_descriptors)
        return front, back

    def match_descriptor(self, prepared: np.ndarray, template_set: ReferenceTemplateSet,
                         classifier: MatchClassifier) -> MatchOutcome:
        """Best outcome over the rotated and colour variants, each classified on its own."""
        if not template_set.has_descriptors:
            return MatchOutcome.invalid()

        best = MatchOutcome.invalid()
        for vector in self.embed_many(self.descriptor_backend, self.descriptor_variants(prepared)):
            outcome = classifier.classify_similarities(*self.descriptor_scores(vector, template_set))
            best = preferred(best, outcome)
        return best

    # -- feature-print path -----------------------------------------------

    def feature_print_distances(self, vector: np.ndarray,
                                template_set: ReferenceTemplateSet) -> Tuple[float, float]:
        distance = self.feature_print_backend.distance
        front = top_k_average([distance(vector, t) for t in template_set.front_feature_prints])
        back = top_k_average([distance(vector, t) for t in template_set.back_feature_prints])
        return front, back

    def match_feature_print(self, prepared: np.ndarray, template_set: ReferenceTemplateSet,
                            classifier: MatchClassifier) -> MatchOutcome:
        """Best outcome over the colour variants of the crop."""
        if self.feature_print_backend is None or not template_set.has_feature_prints:
            return MatchOutcome.invalid()
        if template_set.feature_print_backend not in (None, self.feature_print_backend.name):
            logger.warning(f"Templates were built with {template_set.feature_print_backend}, "
                           f"not {self.feature_print_backend.name}; skipping feature prints")
            return MatchOutcome.invalid()

        best = MatchOutcome.invalid()
        for variant in color_variants(prepared):
            vector = self.embed_one(self.feature_print_backend, variant)
            if vector is None:
                continue
            outcome = classifier.classify_distances(*self.feature_print_distances(vector, template_set))
            best = preferred(best, outcome)
        return best

    # -- calibration statistics -------------------------------------------

    def descriptor_statistics(self, template_set: ReferenceTemplateSet) -> Tuple[List[float], List[float]]:
        """(intra-face, cross-face) cosine similarities."""
        similarity = self.descriptor_backend.similarity
        intra = (pairwise_within(template_set.front_descriptors, similarity)
                 + pairwise_within(template_set.back_descriptors, similarity))
        inter = pairwise_across(template_set.front_descriptors, template_set.back_descriptors, similarity)
        return intra, inter

    def feature_print_statistics(self, template_set: ReferenceTemplateSet) -> Tuple[List[float], List[float]]:
        """(intra-face, cross-face) feature-print distances."""
        if self.feature_print_backend is None or not template_set.has_feature_prints:
            return [], []
        distance = self.feature_print_backend.distance
        intra = (pairwise_within(template_set.front_feature_prints, distance)
                 + pairwise_within(template_set.back_feature_prints, distance))
        inter = pairwise_across(template_set.front_feature_prints, template_set.back_feature_prints, distance)
        return intra, inter
