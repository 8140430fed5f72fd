"""Builds, calibrates and (de)serializes reference template sets."""
import base64
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..core.entities import CalibrationParameters, ReferenceTemplateSet
from ..core.exceptions import CalibrationFailure, TemplateDataError
from ..core.threading_manager import WorkerPool
from ..utils.image_utils import prepare_coin_for_matching
from .match_classifier import build_calibration
from .similarity_engine import SimilarityEngine

logger = logging.getLogger(__name__)

BLOB_VERSION = 1
_COLLECTIONS = ("front_descriptors", "back_descriptors", "front_feature_prints", "back_feature_prints")


def _encode_vectors(vectors: Sequence[np.ndarray]) -> List[Dict[str, Any]]:
    return [
        {
            "length": int(np.asarray(v).size),
            "data": base64.b64encode(np.asarray(v, dtype="<f4").ravel().tobytes()).decode("ascii"),
        }
        for v in vectors
    ]


def _decode_vectors(name: str, entries: Any) -> Tuple[np.ndarray, ...]:
    if not isinstance(entries, list):
        raise TemplateDataError(f"'{name}' must be a list")

    vectors = []
    for index, entry in enumerate(entries):
        try:
            raw = base64.b64decode(entry["data"], validate=True)
            length = int(entry["length"])
        except (KeyError, TypeError, ValueError) as e:
            raise TemplateDataError(f"Malformed vector {index} in '{name}': {e}") from e
        vector = np.frombuffer(raw, dtype="<f4").astype(np.float32)
        if vector.size != length:
            raise TemplateDataError(f"Vector {index} in '{name}' has {vector.size} values, expected {length}")
        vectors.append(vector)

    if len({v.size for v in vectors}) > 1:
        raise TemplateDataError(f"Vectors in '{name}' have differing lengths")
    return tuple(vectors)


def serialize_template_set(template_set: ReferenceTemplateSet) -> bytes:
    payload = {
        "version": BLOB_VERSION,
        "created_at": template_set.created_at.astimezone(timezone.utc).isoformat(),
        "descriptor_backend": template_set.descriptor_backend,
        "feature_print_backend": template_set.feature_print_backend,
    }
    for name in _COLLECTIONS:
        payload[name] = _encode_vectors(getattr(template_set, name))
    return json.dumps(payload).encode("utf-8")


def deserialize_template_set(blob: bytes) -> ReferenceTemplateSet:
    """Decode a stored blob.

    Raises:
        TemplateDataError: Unreadable JSON, unknown version, or ragged vectors
    """
    try:
        payload = json.loads(blob.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise TemplateDataError(f"Template blob is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise TemplateDataError("Template blob must be a JSON object")
    if payload.get("version") != BLOB_VERSION:
        raise TemplateDataError(f"Unsupported template blob version: {payload.get('version')!r}")

    try:
        created_at = datetime.fromisoformat(payload["created_at"])
    except (KeyError, TypeError, ValueError) as e:
        raise TemplateDataError(f"Invalid creation timestamp: {e}") from e
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)

    collections = {name: _decode_vectors(name, payload.get(name, [])) for name in _COLLECTIONS}
    return ReferenceTemplateSet(
        descriptor_backend=payload.get("descriptor_backend") or "gradient",
        feature_print_backend=payload.get("feature_print_backend"),
        created_at=created_at,
        **collections,
    )


class TemplateManager:
    """Turns sample photos of each face into a ReferenceTemplateSet."""

    def __init__(self, engine: Optional[SimilarityEngine] = None):
        self.engine = engine or SimilarityEngine()
        self._pool: Optional[WorkerPool] = None

    @staticmethod
    def prepare_samples(images: Sequence[np.ndarray]) -> List[np.ndarray]:
        prepared = []
        for index, image in enumerate(images):
            sample = prepare_coin_for_matching(image)
            if sample is None:
                logger.warning(f"Sample image {index} is empty, skipping")
                continue
            prepared.append(sample)
        return prepared

    def build_template_set(self, front_images: Sequence[np.ndarray],
                           back_images: Sequence[np.ndarray]) -> ReferenceTemplateSet:
        """Embed every sample with both representations.

        Raises:
            CalibrationFailure: A face ended up with no usable vector at all
        """
        front = self.prepare_samples(front_images)
        back = self.prepare_samples(back_images)

        descriptor_backend = self.engine.descriptor_backend
        fp_backend = self.engine.feature_print_backend
        front_prints = tuple(self.engine.embed_many(fp_backend, front)) if fp_backend else ()
        back_prints = tuple(self.engine.embed_many(fp_backend, back)) if fp_backend else ()
        template_set = ReferenceTemplateSet(
            front_descriptors=tuple(self.engine.embed_many(descriptor_backend, front)),
            back_descriptors=tuple(self.engine.embed_many(descriptor_backend, back)),
            front_feature_prints=front_prints,
            back_feature_prints=back_prints,
            descriptor_backend=descriptor_backend.name,
            feature_print_backend=fp_backend.name if front_prints or back_prints else None,
        )

        if not template_set.is_usable:
            raise CalibrationFailure(
                f"No usable templates: front={len(template_set.front_descriptors)} descriptors, "
                f"back={len(template_set.back_descriptors)} descriptors")

        logger.info(f"Built templates: {len(template_set.front_descriptors)} front / "
                    f"{len(template_set.back_descriptors)} back descriptors, "
                    f"{len(template_set.front_feature_prints)} front / "
                    f"{len(template_set.back_feature_prints)} back feature prints")
        return template_set

    def calibration_for(self, template_set: ReferenceTemplateSet) -> CalibrationParameters:
        """Thresholds derived from the set's own intra- and cross-face statistics."""
        descriptor_intra, descriptor_inter = self.engine.descriptor_statistics(template_set)
        print_intra, print_inter = self.engine.feature_print_statistics(template_set)
        return build_calibration(descriptor_intra, descriptor_inter, print_intra, print_inter)

    def calibrate(self, front_images: Sequence[np.ndarray],
                  back_images: Sequence[np.ndarray]) -> Tuple[ReferenceTemplateSet, CalibrationParameters]:
        template_set = self.build_template_set(front_images, back_images)
        return template_set, self.calibration_for(template_set)

    def calibrate_async(self, front_images: Sequence[np.ndarray], back_images: Sequence[np.ndarray],
                        callback: Optional[Callable] = None,
                        error_callback: Optional[Callable[[BaseException], None]] = None):
        """Run calibration on the dedicated calibration pool; returns a Future."""
        if self._pool is None:
            self._pool = WorkerPool("calibration", max_workers=1)
        return self._pool.submit(self.calibrate, list(front_images), list(back_images),
                                 callback=callback, error_callback=error_callback)

    def shutdown(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            logger.debug(f"Calibration pool stats: {self._pool.get_stats()}")
            self._pool = None
