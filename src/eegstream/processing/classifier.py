"""
Mental state classification from band powers.

A fixed threshold rule on alpha, theta and beta:

- alpha > beta and theta > beta  ->  DeepState
- alpha > beta                   ->  RelaxedFocus
- otherwise                      ->  ActiveState
"""

from dataclasses import dataclass
from typing import Optional

from ..core.constants import CLASSIFIER_QUALITY
from ..core.data_types import BandPowerEstimate, ClassificationResult, MentalState


@dataclass(frozen=True)
class ClassifierPolicy:
    """Quality score reported for each label (0-100)."""
    deep_quality: int = CLASSIFIER_QUALITY["deep"]
    relaxed_quality: int = CLASSIFIER_QUALITY["relaxed"]
    active_quality: int = CLASSIFIER_QUALITY["active"]

    def __post_init__(self):
        for name in ("deep_quality", "relaxed_quality", "active_quality"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be within 0-100, got {value}")


class StateClassifier:
    """Stateless classifier: the same estimate always gives the same result."""

    def __init__(self, policy: Optional[ClassifierPolicy] = None):
        self.policy = policy or ClassifierPolicy()

    def classify(self, band_power: BandPowerEstimate) -> ClassificationResult:
        """Label one channel's band powers."""
        if band_power.alpha > band_power.beta and band_power.theta > band_power.beta:
            label, quality = MentalState.DEEP_STATE, self.policy.deep_quality
        elif band_power.alpha > band_power.beta:
            label, quality = MentalState.RELAXED_FOCUS, self.policy.relaxed_quality
        else:
            label, quality = MentalState.ACTIVE_STATE, self.policy.active_quality

        return ClassificationResult(
            timestamp=band_power.timestamp,
            label=label,
            quality_score=quality,
            channel=band_power.channel,
        )

    __call__ = classify
