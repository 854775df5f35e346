"""
FastAPI endpoint tests for the VIN Decoder API.

Uses httpx + FastAPI TestClient — no real server, no vPIC database.
"""

from __future__ import annotations

import api
import pytest
from api import app
from fastapi.testclient import TestClient

from vin_decoder.models import DecodeOptions
from vin_decoder.pipeline import VinDecoder

client = TestClient(app)


@pytest.fixture(scope="module", autouse=True)
def _warm_decoder(shared_honda_storage) -> None:
    """Initialise the decoder once for all API tests (bypasses lifespan)."""
    api._decoder = VinDecoder(shared_honda_storage)
    yield  # type: ignore[misc]
    api._decoder = None


# ─── Sample VINs ─────────────────────────────────────────────────────

HONDA_VIN = "1HGCM82633A004352"
UNKNOWN_WMI_VIN = "11111111111111111"


class TestHealthEndpoint:
    def test_health_returns_200(self) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200

    def test_health_response_shape(self) -> None:
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"
        assert data["database"] == "MemoryVinStorage"


class TestDecodePost:
    def test_decodes_honda(self) -> None:
        resp = client.post("/decode", json={"vin": HONDA_VIN})
        assert resp.status_code == 200
        data = resp.json()
        assert data["valid"] is True
        assert data["vin"] == HONDA_VIN
        assert data["components"]["vehicle"]["model"] == "Accord"
        assert data["components"]["plant"]["code"] == "A"

    def test_counts(self) -> None:
        data = client.post("/decode", json={"vin": HONDA_VIN}).json()
        assert data["error_count"] == 0
        assert data["warning_count"] == 0

    def test_vin_is_normalized(self) -> None:
        data = client.post("/decode", json={"vin": "  1hgcm82633a004352 "}).json()
        assert data["vin"] == HONDA_VIN
        assert data["valid"] is True

    def test_low_confidence_warning(self) -> None:
        data = client.post(
            "/decode", json={"vin": HONDA_VIN, "confidence_threshold": 0.95}
        ).json()
        assert data["valid"] is True
        assert data["warning_count"] == 1
        assert data["errors"][0]["code"] == "401"
        assert data["errors"][0]["severity"] == "warning"

    def test_pattern_details(self) -> None:
        data = client.post(
            "/decode", json={"vin": HONDA_VIN, "include_pattern_details": True}
        ).json()
        assert len(data["patterns"]) == 7
        assert data["patterns"][0]["element"] == "Model"

    def test_patterns_omitted_by_default(self) -> None:
        data = client.post("/decode", json={"vin": HONDA_VIN}).json()
        assert data["patterns"] is None

    def test_short_vin_is_a_structured_error(self) -> None:
        resp = client.post("/decode", json={"vin": "ABC"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["valid"] is False
        assert data["error_count"] == 1
        assert data["errors"][0]["code"] == "100"
        assert data["errors"][0]["category"] == "structure"

    def test_long_vin_is_a_structured_error(self) -> None:
        resp = client.post("/decode", json={"vin": "1HGCM82633A004352" * 5})
        assert resp.status_code == 200
        data = resp.json()
        assert data["valid"] is False
        assert data["errors"][0]["code"] == "100"

    def test_request_options_merge_over_server_defaults(
        self, shared_honda_storage, monkeypatch
    ) -> None:
        strict = VinDecoder(shared_honda_storage, DecodeOptions(confidence_threshold=0.95))
        monkeypatch.setattr(api, "_decoder", strict)
        data = client.post(
            "/decode", json={"vin": HONDA_VIN, "include_pattern_details": True}
        ).json()
        assert data["warning_count"] == 1
        assert len(data["patterns"]) == 7

    def test_unknown_wmi(self) -> None:
        data = client.post("/decode", json={"vin": UNKNOWN_WMI_VIN}).json()
        assert data["valid"] is False
        assert data["errors"][0]["category"] == "lookup"
        assert data["errors"][0]["search_key"] == "111"


class TestDecodeGet:
    def test_decodes_honda(self) -> None:
        resp = client.get(f"/decode/{HONDA_VIN}")
        assert resp.status_code == 200
        assert resp.json()["components"]["vehicle"]["make"] == "HONDA"

    def test_query_options(self) -> None:
        data = client.get(
            f"/decode/{HONDA_VIN}", params={"include_pattern_details": "true"}
        ).json()
        assert len(data["patterns"]) == 7

    def test_year_override(self) -> None:
        data = client.get(f"/decode/{HONDA_VIN}", params={"model_year": 1999}).json()
        assert data["valid"] is False
        assert data["errors"][0]["code"] == "400"
        assert data["components"]["model_year"]["source"] == "override"

    def test_diagnostics(self) -> None:
        data = client.get(
            f"/decode/{HONDA_VIN}", params={"include_diagnostics": "true"}
        ).json()
        assert "patterns" in data["metadata"]["stage_timings"]


class TestRequestValidation:
    def test_empty_body_returns_422(self) -> None:
        resp = client.post("/decode", json={})
        assert resp.status_code == 422

    def test_empty_vin_returns_422(self) -> None:
        resp = client.post("/decode", json={"vin": ""})
        assert resp.status_code == 422

    def test_threshold_out_of_range_returns_422(self) -> None:
        resp = client.post("/decode", json={"vin": HONDA_VIN, "confidence_threshold": 2})
        assert resp.status_code == 422

    def test_query_threshold_out_of_range_returns_422(self) -> None:
        resp = client.get(f"/decode/{HONDA_VIN}", params={"confidence_threshold": 5})
        assert resp.status_code == 422

    def test_missing_content_type_returns_422(self) -> None:
        resp = client.post("/decode")
        assert resp.status_code == 422


class TestNotInitialised:
    def test_decode_returns_503(self, monkeypatch) -> None:
        monkeypatch.setattr(api, "_decoder", None)
        resp = client.post("/decode", json={"vin": HONDA_VIN})
        assert resp.status_code == 503

    def test_health_returns_503(self, monkeypatch) -> None:
        monkeypatch.setattr(api, "_decoder", None)
        assert client.get("/health").status_code == 503
