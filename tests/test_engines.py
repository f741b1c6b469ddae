"""Tests for core.engines module."""

import asyncio
from datetime import datetime, timezone

import pytest

from core.engines import (
    FEATURE_THRESHOLDS,
    ClassificationEngine,
    MockEngine,
    RemoteEngine,
    parse_engine_response,
)
from core.grading import grade_for_severity
from core.utils import DRGrade, EngineError, EngineErrorKind


def classify_many(engine, image, n):
    async def run():
        return [await engine.classify(image) for _ in range(n)]
    return asyncio.run(run())


def remote_payload(**overrides):
    payload = {
        "label": "Moderate NPDR",
        "confidence": 0.77,
        "severity": 2,
        "description": "Hemorrhages and exudates present",
        "recommendation": "Ophthalmologist visit in 3–6 months",
        "features": {
            "microaneurysms": True,
            "hemorrhages": True,
            "exudates": False,
            "cottonWoolSpots": False,
            "neovascularization": False,
        },
        "timestamp": "2024-05-01T12:00:00Z",
    }
    payload.update(overrides)
    return payload


class TestClassificationEngine:
    def test_is_abstract(self):
        with pytest.raises(TypeError):
            ClassificationEngine()


class TestMockEngine:
    def test_results_honor_contract(self, uploaded_image):
        for result in classify_many(MockEngine(latency_s=0, seed=7), uploaded_image, 200):
            assert 0.0 <= result.confidence <= 1.0
            assert result.severity in {0, 1, 2, 3, 4}
            row = grade_for_severity(result.severity)
            assert result.label is row.label
            assert result.description == row.description
            assert result.recommendation == row.recommendation
            assert result.features.neovascularization == (result.severity == 4)

    def test_every_row_reachable(self, uploaded_image):
        results = classify_many(MockEngine(latency_s=0, seed=1), uploaded_image, 200)
        assert {r.severity for r in results} == {0, 1, 2, 3, 4}

    def test_seed_is_reproducible(self, uploaded_image):
        a = classify_many(MockEngine(latency_s=0, seed=42), uploaded_image, 20)
        b = classify_many(MockEngine(latency_s=0, seed=42), uploaded_image, 20)
        assert [(r.severity, r.features) for r in a] == [(r.severity, r.features) for r in b]

    def test_feature_rates_track_thresholds(self, uploaded_image):
        results = classify_many(MockEngine(latency_s=0, seed=3), uploaded_image, 2000)
        for name, threshold in FEATURE_THRESHOLDS.items():
            rate = sum(getattr(r.features, name) for r in results) / len(results)
            assert abs(rate - (1 - threshold)) < 0.05

    def test_confidence_is_row_nominal(self, uploaded_image):
        for result in classify_many(MockEngine(latency_s=0, seed=5), uploaded_image, 20):
            assert result.confidence == grade_for_severity(result.severity).nominal_confidence

    def test_counts_calls(self, uploaded_image):
        engine = MockEngine(latency_s=0)
        classify_many(engine, uploaded_image, 3)
        assert engine.calls == 3

    def test_latency_suspends(self, uploaded_image):
        async def run():
            engine = MockEngine(latency_s=0.05, seed=0)
            loop = asyncio.get_running_loop()
            start = loop.time()
            await engine.classify(uploaded_image)
            return loop.time() - start
        assert asyncio.run(run()) >= 0.04


class TestRemoteEngine:
    def test_passes_bytes_and_mime(self, uploaded_image):
        seen = {}

        async def transport(data, mime_type):
            seen["data"] = data
            seen["mime_type"] = mime_type
            return remote_payload()

        result = asyncio.run(RemoteEngine(transport).classify(uploaded_image))
        assert seen == {"data": uploaded_image.data, "mime_type": "image/png"}
        assert result.label is DRGrade.MODERATE_NPDR
        assert result.confidence == 0.77

    def test_timeout(self, uploaded_image):
        async def transport(data, mime_type):
            await asyncio.sleep(5)
            return remote_payload()

        with pytest.raises(EngineError) as exc:
            asyncio.run(RemoteEngine(transport, timeout_s=0.01).classify(uploaded_image))
        assert exc.value.kind is EngineErrorKind.TIMEOUT

    def test_transport_timeout_without_deadline(self, uploaded_image):
        async def transport(data, mime_type):
            raise asyncio.TimeoutError("read timed out")

        with pytest.raises(EngineError) as exc:
            asyncio.run(RemoteEngine(transport).classify(uploaded_image))
        assert exc.value.kind is EngineErrorKind.TIMEOUT
        assert "did not respond in time" in str(exc.value)

    def test_transport_failure(self, uploaded_image):
        async def transport(data, mime_type):
            raise ConnectionError("refused")

        with pytest.raises(EngineError) as exc:
            asyncio.run(RemoteEngine(transport).classify(uploaded_image))
        assert exc.value.kind is EngineErrorKind.FAILURE
        assert "refused" in str(exc.value)

    def test_invalid_response(self, uploaded_image):
        async def transport(data, mime_type):
            return remote_payload(severity=9)

        with pytest.raises(EngineError) as exc:
            asyncio.run(RemoteEngine(transport).classify(uploaded_image))
        assert exc.value.kind is EngineErrorKind.FAILURE


class TestParseEngineResponse:
    def test_valid(self):
        result = parse_engine_response(remote_payload())
        assert result.severity == 2
        assert result.features.hemorrhages
        assert not result.features.cotton_wool_spots
        assert result.timestamp == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def test_label_by_enum_name(self):
        assert parse_engine_response(remote_payload(label="MODERATE_NPDR")).label is DRGrade.MODERATE_NPDR

    def test_timestamp_optional(self):
        payload = remote_payload()
        del payload["timestamp"]
        assert parse_engine_response(payload).timestamp.tzinfo is not None

    def test_text_comes_from_table(self):
        result = parse_engine_response(remote_payload(description="something else"))
        assert result.description == "Hemorrhages and exudates present"

    @pytest.mark.parametrize("missing", ["label", "confidence", "severity", "description", "recommendation", "features"])
    def test_missing_field(self, missing):
        payload = remote_payload()
        del payload[missing]
        with pytest.raises(EngineError) as exc:
            parse_engine_response(payload)
        assert missing in str(exc.value)

    def test_missing_feature(self):
        payload = remote_payload()
        del payload["features"]["cottonWoolSpots"]
        with pytest.raises(EngineError):
            parse_engine_response(payload)

    @pytest.mark.parametrize("overrides", [
        {"confidence": 1.5},
        {"confidence": "high"},
        {"severity": 5},
        {"severity": "2"},
        {"label": "Severe NPDR"},
        {"label": "Unknown"},
        {"description": None},
        {"features": []},
        {"timestamp": "yesterday"},
    ])
    def test_contract_violations(self, overrides):
        with pytest.raises(EngineError) as exc:
            parse_engine_response(remote_payload(**overrides))
        assert exc.value.kind is EngineErrorKind.FAILURE

    def test_neovascularization_below_proliferative(self):
        payload = remote_payload()
        payload["features"]["neovascularization"] = True
        with pytest.raises(EngineError):
            parse_engine_response(payload)

    def test_feature_must_be_bool(self):
        payload = remote_payload()
        payload["features"]["exudates"] = 1
        with pytest.raises(EngineError):
            parse_engine_response(payload)

    def test_not_a_mapping(self):
        with pytest.raises(EngineError):
            parse_engine_response(["label"])
