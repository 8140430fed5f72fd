"""Directory-backed storage for profile template blobs and calibration samples."""

import logging
import os
import re
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Sequence

import numpy as np

from ..core.exceptions import TemplateDataError
from ..utils.image_utils import read_image, write_image

logger = logging.getLogger(__name__)

_PROFILE_ID = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_.-]{0,63}$')
TEMPLATE_FILE = "templates.json"
FACES = ("front", "back")


class ProfileStore:
    """Opaque blob round-trip per profile, one directory per profile."""

    def __init__(self, profiles_dir: str = "data/profiles"):
        """Initialize the store.

        Args:
            profiles_dir: Directory holding one sub-directory per profile
        """
        self.profiles_dir = Path(profiles_dir)
        self.profiles_dir.mkdir(parents=True, exist_ok=True)

    def _profile_dir(self, profile_id: str) -> Path:
        if not _PROFILE_ID.match(profile_id or ""):
            raise ValueError(f"Invalid profile id: {profile_id!r}")
        return self.profiles_dir / profile_id

    def save(self, profile_id: str, blob: bytes) -> Path:
        """Atomically write the template blob for a profile."""
        directory = self._profile_dir(profile_id)
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / TEMPLATE_FILE

        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".templates-", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(blob)
            os.replace(tmp_path, target)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

        logger.info(f"Saved templates for profile '{profile_id}' ({len(blob)} bytes)")
        return target

    def load_reference_template_set(self, profile_id: str) -> bytes:
        """Raw blob for a profile.

        Raises:
            TemplateDataError: If the profile has no stored templates
        """
        path = self._profile_dir(profile_id) / TEMPLATE_FILE
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise TemplateDataError(f"No templates stored for profile '{profile_id}'") from None

    def exists(self, profile_id: str) -> bool:
        return (self._profile_dir(profile_id) / TEMPLATE_FILE).is_file()

    def list_profiles(self) -> List[str]:
        return sorted(p.name for p in self.profiles_dir.iterdir()
                      if p.is_dir() and (p / TEMPLATE_FILE).is_file())

    def delete(self, profile_id: str) -> bool:
        directory = self._profile_dir(profile_id)
        if not directory.exists():
            return False
        for path in sorted(directory.rglob("*"), reverse=True):
            if path.is_dir():
                path.rmdir()
            else:
                path.unlink()
        directory.rmdir()
        logger.info(f"Deleted profile '{profile_id}'")
        return True

    def save_samples(self, profile_id: str, face: str, images: Sequence[np.ndarray]) -> List[str]:
        """Keep the calibration photos so templates can be regenerated later."""
        if face not in FACES:
            raise ValueError(f"Unknown face: {face}")
        directory = self._profile_dir(profile_id) / "samples" / face
        directory.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        saved = []
        for index, image in enumerate(images):
            path = directory / f"{face}_{timestamp}_{index:02d}.png"
            if write_image(str(path), image):
                saved.append(str(path))
            else:
                logger.warning(f"Could not encode sample {index} for profile '{profile_id}'")
        logger.info(f"Saved {len(saved)} {face} samples for profile '{profile_id}'")
        return saved

    def load_samples(self, profile_id: str) -> Dict[str, List[np.ndarray]]:
        samples: Dict[str, List[np.ndarray]] = {face: [] for face in FACES}
        for face in FACES:
            directory = self._profile_dir(profile_id) / "samples" / face
            if not directory.is_dir():
                continue
            for path in sorted(directory.glob("*.png")):
                image = read_image(str(path))
                if image is None:
                    logger.warning(f"Skipping unreadable sample: {path}")
                    continue
                samples[face].append(image)
        return samples
