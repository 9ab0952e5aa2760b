"""Unit tests for the placeholder AI handlers."""

import pytest

from cropclaim.database.enums import AiTaskType
from cropclaim.services.ai.handlers import (
    AiHandlerRegistry,
    FraudDetectionHandler,
    OcrHandler,
    SatelliteHandler,
    default_handler_registry,
)

SATELLITE_INPUT = {
    "location": "Survey 112, Nashik",
    "date_of_incident": "2026-04-15",
    "images": ["uploads/field-1.jpg", "uploads/field-2.jpg"],
    "policy_images": ["policies/pol-1/baseline.jpg"],
    "sum_insured": 50000.0,
}


class TestOcrHandler:
    async def test_counts_uploads(self):
        output = await OcrHandler().analyze({"images": ["a.jpg"], "documents": ["b.pdf", "c.pdf"]})

        assert output.error is None
        assert output.report["status"] == "processed"
        assert output.report["images_processed"] == 1
        assert output.report["documents_processed"] == 2
        assert output.damage_percent is None


class TestSatelliteHandler:
    async def test_damage_is_bounded_and_priced_against_sum_insured(self):
        output = await SatelliteHandler().analyze(SATELLITE_INPUT)

        assert 0 <= output.damage_percent <= 50
        assert output.recommended_amount == round(50000.0 * output.damage_percent / 100, 2)
        assert output.report["has_baseline_images"] is True
        assert output.report["claim_images_count"] == 2

    async def test_same_input_same_result(self):
        first = await SatelliteHandler().analyze(SATELLITE_INPUT)
        second = await SatelliteHandler().analyze(dict(SATELLITE_INPUT))

        assert first == second

    async def test_location_only_has_no_damage_estimate(self):
        output = await SatelliteHandler().analyze({"location": "Survey 112, Nashik"})

        assert output.damage_percent is None
        assert output.recommended_amount is None
        assert output.report["location"] == "Survey 112, Nashik"


class TestFraudDetectionHandler:
    async def test_scores_against_policy_images(self):
        output = await FraudDetectionHandler().analyze({**SATELLITE_INPUT, "policy_id": "pol-1"})

        flags = output.validation_flags
        assert flags["fraud_risk"] in ("low", "medium", "high")
        assert 0 <= flags["image_match_score"] <= 100
        assert output.report["image_matching_performed"] is True
        assert len(output.report["matched_images"]) == 1

    async def test_missing_policy_images_is_medium_risk(self):
        output = await FraudDetectionHandler().analyze({"images": ["uploads/field-1.jpg"]})

        assert output.validation_flags["fraud_risk"] == "medium"
        assert "policy images missing" in output.validation_flags["reason"]
        assert output.report["image_matching_performed"] is False

    @pytest.mark.parametrize(
        "score,risk",
        [(10.0, "high"), (45.0, "medium"), (90.0, "low")],
    )
    def test_classification_bands(self, score, risk):
        assert FraudDetectionHandler._classify(score)[0] == risk


class TestAiHandlerRegistry:
    def test_default_registry_covers_every_task_type(self):
        registry = default_handler_registry()

        for task_type in AiTaskType:
            assert registry.get(task_type).task_type == task_type

    def test_accepts_raw_values(self):
        assert isinstance(default_handler_registry().get("ocr"), OcrHandler)

    def test_unknown_handler(self):
        registry = AiHandlerRegistry([OcrHandler()])

        with pytest.raises(KeyError):
            registry.get(AiTaskType.SATELLITE)
