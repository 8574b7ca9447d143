# sentinelmind/services/biometric_verifier.py

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import NoTemplateRegistered
from .hash_similarity import HashSimilarityComparer
from .perceptual_hash import PerceptualHashGenerator
from .template_store import BiometricTemplate, TemplateStore, utc_now

logger = logging.getLogger(__name__)

DEFAULT_ACCEPTANCE_THRESHOLD = 0.6


@dataclass(frozen=True)
class VerificationResult:
    success: bool
    score: float
    threshold: float

    def to_dict(self):
        return {"success": self.success, "score": round(self.score, 4), "threshold": self.threshold}


class BiometricVerifier:
    """
    Enrolls and verifies owners by perceptual hash of a single frame.

    The acceptance threshold is a configurable constant; it has not been
    calibrated against false-accept / false-reject rates.
    """

    def __init__(self, store: TemplateStore,
                 generator: Optional[PerceptualHashGenerator] = None,
                 comparer: Optional[HashSimilarityComparer] = None,
                 acceptance_threshold: float = DEFAULT_ACCEPTANCE_THRESHOLD):
        if not 0.0 <= acceptance_threshold <= 1.0:
            raise ValueError(f"acceptance_threshold must lie in [0, 1], got {acceptance_threshold}")
        self.store = store
        self.generator = generator or PerceptualHashGenerator()
        self.comparer = comparer or HashSimilarityComparer()
        self.acceptance_threshold = acceptance_threshold

    def has_template(self, owner_id: str) -> bool:
        return self.store.get(owner_id) is not None

    def enroll(self, owner_id: str, frame) -> BiometricTemplate:
        """Hash the frame and store it for owner_id, replacing any prior template."""
        template = BiometricTemplate(
            owner_id=owner_id,
            signature=self.generator.hash(frame),
            registered_at=utc_now(),
        )
        self.store.set(owner_id, template)
        logger.info(f"Enrolled biometric template for owner {owner_id}")
        return template

    def remove(self, owner_id: str) -> None:
        """Delete the owner's template. Raises NoTemplateRegistered if there is none."""
        if not self.store.delete(owner_id):
            raise NoTemplateRegistered(owner_id)
        logger.info(f"Removed biometric template for owner {owner_id}")

    def verify(self, owner_id: str, frame) -> VerificationResult:
        """
        Compare a fresh frame against the owner's template.

        Raises NoTemplateRegistered when the owner never enrolled and
        LengthMismatch when the stored template came from a different
        generator configuration.
        """
        stored = self.store.get(owner_id)
        if stored is None:
            raise NoTemplateRegistered(owner_id)

        signature = self.generator.hash(frame)
        score = self.comparer.similarity(signature, stored.signature)
        success = score >= self.acceptance_threshold

        logger.info(f"Verification for owner {owner_id}: score={score:.3f} "
                    f"threshold={self.acceptance_threshold} success={success}")
        return VerificationResult(success=success, score=score, threshold=self.acceptance_threshold)
