"""Pluggable AI handlers for the verification task queue.

The real models (OCR engine, satellite imagery analysis, fraud scoring)
live behind these classes. The default implementations are deterministic
placeholders: scores are derived from a hash of the task input so the
same claim always produces the same report.
"""

import hashlib
import json
import random
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional

from cropclaim.database.enums import AiTaskType
from cropclaim.services.ai.models import (
    AiTaskOutput,
    FraudFlags,
    FraudReport,
    ImageMatch,
    OcrReport,
    SatelliteReport,
)
from cropclaim.utils.logging import get_logger

LOGGER = get_logger(__name__)

HIGH_RISK_MATCH_SCORE = 30.0
MEDIUM_RISK_MATCH_SCORE = 60.0
MAX_PLACEHOLDER_DAMAGE_PERCENT = 50.0
FALLBACK_AMOUNT_PER_DAMAGE_PERCENT = 1000.0


def _seeded_random(*parts: Any) -> random.Random:
    digest = hashlib.sha256(
        json.dumps(parts, sort_keys=True, default=str).encode("utf-8")
    ).hexdigest()
    return random.Random(int(digest[:16], 16))


class BaseAiHandler(ABC):
    """Base class for AI handlers.

    Handlers may raise (any exception enters the retry ladder) or return an
    ``AiTaskOutput`` with ``error`` set, which is treated the same way.
    """

    task_type: AiTaskType

    @abstractmethod
    async def analyze(self, input_data: Dict[str, Any]) -> AiTaskOutput:
        """Run the analysis for one task input snapshot."""


class OcrHandler(BaseAiHandler):
    """Extract text from the claim's uploaded images and documents."""

    task_type = AiTaskType.OCR

    async def analyze(self, input_data: Dict[str, Any]) -> AiTaskOutput:
        images = input_data.get("images") or []
        documents = input_data.get("documents") or []

        report = OcrReport(
            images_processed=len(images),
            documents_processed=len(documents),
        )
        return AiTaskOutput(report=report.model_dump(mode="json"))


class SatelliteHandler(BaseAiHandler):
    """Estimate crop damage for the incident location and date."""

    task_type = AiTaskType.SATELLITE

    async def analyze(self, input_data: Dict[str, Any]) -> AiTaskOutput:
        location = input_data.get("location")
        date_of_incident = input_data.get("date_of_incident")
        images = input_data.get("images") or []
        policy_images = input_data.get("policy_images") or []
        sum_insured = input_data.get("sum_insured")

        damage_percent: Optional[float] = None
        recommended_amount: Optional[float] = None

        if images:
            rng = _seeded_random(location, date_of_incident, sorted(images))
            damage_percent = round(rng.random() * MAX_PLACEHOLDER_DAMAGE_PERCENT, 2)
            if sum_insured:
                recommended_amount = round(float(sum_insured) * damage_percent / 100, 2)
            else:
                recommended_amount = round(damage_percent * FALLBACK_AMOUNT_PER_DAMAGE_PERCENT, 2)

        report = SatelliteReport(
            location=location,
            date_of_incident=date_of_incident,
            policy_images_count=len(policy_images),
            claim_images_count=len(images),
            has_baseline_images=bool(policy_images),
            damage_percent=damage_percent,
        )
        return AiTaskOutput(
            damage_percent=damage_percent,
            recommended_amount=recommended_amount,
            report=report.model_dump(mode="json"),
        )


class FraudDetectionHandler(BaseAiHandler):
    """Match claim images against the policy's baseline images."""

    task_type = AiTaskType.FRAUD_DETECTION

    async def analyze(self, input_data: Dict[str, Any]) -> AiTaskOutput:
        images = input_data.get("images") or []
        policy_images = input_data.get("policy_images") or []
        policy_id = input_data.get("policy_id")

        flags = FraudFlags()
        report = FraudReport(
            policy_id=policy_id,
            policy_images_count=len(policy_images),
            claim_images_count=len(images),
        )

        if policy_images and images:
            rng = _seeded_random(policy_id, sorted(images), sorted(policy_images))
            score = round(rng.random() * 100, 2)
            flags.image_match_score = score
            flags.fraud_risk, flags.reason = self._classify(score)
            report.image_matching_performed = True
            report.match_score = score
            report.matched_images = [
                ImageMatch(
                    policy_image_index=idx,
                    claim_image_index=idx % len(images),
                    similarity=round(score - idx * 5, 2),
                )
                for idx in range(min(3, len(policy_images)))
            ]
        else:
            flags.fraud_risk = "medium"
            flags.reason = "Cannot verify image authenticity - policy images missing"

        return AiTaskOutput(
            validation_flags=flags.model_dump(mode="json"),
            report=report.model_dump(mode="json"),
        )

    @staticmethod
    def _classify(score: float) -> tuple[str, str]:
        if score < HIGH_RISK_MATCH_SCORE:
            return "high", "Low image similarity - images may not be from the same location"
        if score < MEDIUM_RISK_MATCH_SCORE:
            return "medium", "Moderate image similarity - manual review recommended"
        return "low", "High image similarity - images appear to be from the same location"


class AiHandlerRegistry:
    """Maps task types to handler instances."""

    def __init__(self, handlers: Optional[Iterable[BaseAiHandler]] = None):
        self._handlers: Dict[AiTaskType, BaseAiHandler] = {}
        for handler in handlers or ():
            self.register(handler)

    def register(self, handler: BaseAiHandler) -> None:
        self._handlers[handler.task_type] = handler
        LOGGER.debug(f"Registered AI handler {handler.__class__.__name__} for {handler.task_type.value}")

    def get(self, task_type: AiTaskType) -> BaseAiHandler:
        handler = self._handlers.get(AiTaskType(task_type))
        if handler is None:
            raise KeyError(f"No AI handler registered for task type: {task_type}")
        return handler


def default_handler_registry() -> AiHandlerRegistry:
    """Registry with the placeholder handler for every task type."""
    return AiHandlerRegistry([OcrHandler(), SatelliteHandler(), FraudDetectionHandler()])
