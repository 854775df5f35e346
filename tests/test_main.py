"""CLI tests — run main() in-process against the tmp_path vPIC database."""

from __future__ import annotations

import json

import pytest

from main import main, print_result
from vin_decoder.pipeline import VinDecoder

HONDA_VIN = "1HGCM82633A004352"
BAD_CHECK_VIN = "1HGCM82643A004352"


@pytest.fixture(autouse=True)
def _no_env_database(monkeypatch):
    monkeypatch.delenv("VIN_DECODER_DATABASE_PATH", raising=False)


class TestDecodeCommand:
    def test_pretty_output(self, vpic_db, capsys):
        assert main(["decode", HONDA_VIN, "-d", str(vpic_db)]) == 0
        out = capsys.readouterr().out
        assert "VIN DECODE REPORT" in out
        assert "2003 HONDA Accord" in out
        assert "MARYSVILLE" in out
        assert "VIN DECODED" in out

    def test_input_is_normalized(self, vpic_db):
        assert main(["decode", f" {HONDA_VIN.lower()} ", "-d", str(vpic_db)]) == 0

    def test_json_output(self, vpic_db, capsys):
        assert main(["decode", HONDA_VIN, "-d", str(vpic_db), "-f", "json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["valid"] is True
        assert data["components"]["vehicle"]["model"] == "Accord"
        assert "patterns" not in data  # None fields are dropped

    def test_pattern_details(self, vpic_db, capsys):
        main(["decode", HONDA_VIN, "-d", str(vpic_db), "-p"])
        out = capsys.readouterr().out
        assert "PATTERNS (8)" in out
        assert "*****|*A" in out

    def test_raw_records_in_json(self, vpic_db, capsys):
        main(["decode", HONDA_VIN, "-d", str(vpic_db), "-r", "-f", "json"])
        data = json.loads(capsys.readouterr().out)
        assert data["metadata"]["raw_records"][0]["record"] == "wmi"

    def test_year_override_failure_exits_1(self, vpic_db, capsys):
        assert main(["decode", HONDA_VIN, "-d", str(vpic_db), "-y", "1999"]) == 1
        out = capsys.readouterr().out
        assert "NO_PATTERNS_FOUND" in out
        assert "DECODE FAILED" in out

    def test_database_from_environment(self, vpic_db, monkeypatch):
        monkeypatch.setenv("VIN_DECODER_DATABASE_PATH", str(vpic_db))
        assert main(["decode", HONDA_VIN]) == 0

    def test_verbose_prints_stage_timings(self, vpic_db, capsys):
        assert main(["decode", HONDA_VIN, "-d", str(vpic_db), "-v"]) == 0
        out = capsys.readouterr().out
        assert "STAGE TIMINGS" in out
        assert "patterns" in out

    def test_verbose_json_carries_stage_timings(self, vpic_db, capsys):
        main(["decode", HONDA_VIN, "-d", str(vpic_db), "-v", "-f", "json"])
        data = json.loads(capsys.readouterr().out)
        assert "assembly" in data["metadata"]["stage_timings"]

    def test_timings_hidden_without_verbose(self, vpic_db, capsys):
        main(["decode", HONDA_VIN, "-d", str(vpic_db)])
        assert "STAGE TIMINGS" not in capsys.readouterr().out


class TestRejections:
    def test_wrong_length_rejected_before_decoding(self, capsys):
        assert main(["decode", "ABC"]) == 1
        assert "17 characters" in capsys.readouterr().err

    def test_no_database_configured(self, capsys):
        assert main(["decode", HONDA_VIN]) == 1
        assert "no database" in capsys.readouterr().err

    def test_missing_database_file(self, tmp_path, capsys):
        assert main(["decode", HONDA_VIN, "-d", str(tmp_path / "missing.db")]) == 1
        assert "not found" in capsys.readouterr().err

    def test_unknown_format_is_usage_error(self):
        with pytest.raises(SystemExit) as exc:
            main(["decode", HONDA_VIN, "-f", "xml"])
        assert exc.value.code == 2


class TestPrintResult:
    def test_warning_still_exits_0(self, decoder, capsys):
        assert print_result(decoder.decode(BAD_CHECK_VIN)) == 0
        out = capsys.readouterr().out
        assert "WARNINGS (1)" in out
        assert "INVALID_CHECK_DIGIT" in out

    def test_structure_error_exits_1(self, honda_storage, capsys):
        result = VinDecoder(honda_storage).decode("ABC")
        assert print_result(result) == 1
        assert "INVALID_LENGTH" in capsys.readouterr().out
