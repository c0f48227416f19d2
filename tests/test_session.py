"""Tests for the reconciliation session.

These tests drive the engine the way an operator does: load the dataset,
import per-source files, search, select, merge and export.
"""

import asyncio
import json
import re

import pytest

from ontop.domain.enums import PlatformMatchMode, SourceName
from ontop.domain.ports import InvalidCriteriaError
from ontop.domain.services import SearchCriteria
from ontop.infrastructure.config_manager import EngineConfig
from ontop.session import NOTHING_TO_MERGE, ReconciliationSession


@pytest.fixture
def session(tmp_path, fixed_clock):
    return ReconciliationSession(
        clock=fixed_clock,
        composite_path=tmp_path / "oonTop.json",
        csv_path=tmp_path / "oonTop.csv",
    )


@pytest.fixture
def loaded_session(session, dataset_file):
    assert session.load_dataset(dataset_file).is_success()
    return session


def write_json(path, payload):
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


class TestDatasetLoading:
    """Test initial dataset handling."""

    def test_load_dataset_populates_sources_and_results(self, session, dataset_file):
        result = session.load_dataset(dataset_file)

        assert result.value == {"eCW": 1, "AMD": 1, "Quest": 0, "Behavidance": 0}
        assert session.last_result is not None
        assert session.last_result.identifiers()["eCW"] == ["1"]

    def test_missing_dataset_is_not_fatal(self, session, tmp_path):
        result = session.load_dataset(tmp_path / "absent.json")

        assert result.is_failure()
        assert result.error_type == "SourceNotFoundError"
        assert len(session.store) == 0
        assert session.last_result is None

    def test_broken_dataset_leaves_store_empty_and_imports_still_work(self, session, tmp_path):
        broken = tmp_path / "patients.json"
        broken.write_text("{not json", encoding="utf-8")

        assert session.load_dataset(broken).is_failure()
        imported = session.import_file("Quest", write_json(tmp_path / "q.json", [{"patientID": "Q1", "providers": "Quest"}]))

        assert imported.value == 1
        assert session.last_result.identifiers()["Quest"] == ["Q1"]

    def test_dataset_with_one_bad_bucket_is_rejected_whole(self, session, tmp_path, scenario_dataset):
        scenario_dataset["Quest"] = [{"patientName": "no id"}]
        path = write_json(tmp_path / "patients.json", scenario_dataset)

        assert session.load_dataset(path).is_failure()
        assert len(session.store) == 0


class TestImport:
    """Test per-source imports."""

    def test_import_dedups_and_refreshes_last_search(self, loaded_session, tmp_path):
        loaded_session.search(SearchCriteria(platform="AMD"))
        batch = write_json(tmp_path / "amd.json", [
            {"patientID": "2", "patientName": "Jon Doe", "providers": "AMD"},
            {"patientID": "7", "patientName": "New Person", "providers": "AMD"},
        ])

        result = loaded_session.import_file("AMD", batch)

        assert result.value == 1
        assert loaded_session.last_result.identifiers()["AMD"] == ["2", "7"]
        assert loaded_session.last_result.identifiers()["eCW"] == []

    def test_import_is_idempotent(self, loaded_session, tmp_path):
        batch = write_json(tmp_path / "amd.json", [{"patientID": "9", "providers": "AMD"}])
        loaded_session.import_file("AMD", batch)
        before = loaded_session.store.records("AMD")

        assert loaded_session.import_file("AMD", batch).value == 0
        assert loaded_session.store.records("AMD") == before

    def test_malformed_import_leaves_store_unchanged(self, loaded_session, tmp_path):
        before = loaded_session.store.all_records()
        bad = tmp_path / "bad.json"
        bad.write_text('[{"patientID": "8"}, {"patientID": ', encoding="utf-8")

        result = loaded_session.import_file("eCW", bad)

        assert result.is_failure()
        assert result.error_type == "MalformedBatchError"
        assert loaded_session.store.all_records() == before

    def test_partially_invalid_import_is_not_applied(self, loaded_session, tmp_path):
        batch = write_json(tmp_path / "mixed.json", [{"patientID": "8"}, {"patientName": "no id"}])
        assert loaded_session.import_file("eCW", batch).is_failure()
        assert loaded_session.store.get("eCW", "8") is None

    def test_unknown_source(self, loaded_session, tmp_path):
        batch = write_json(tmp_path / "x.json", [{"patientID": "1"}])
        result = loaded_session.import_file("Epic", batch)
        assert result.error_type == "UnknownSourceError"

    def test_unsupported_file_type(self, loaded_session, tmp_path):
        path = tmp_path / "batch.xml"
        path.write_text("<patients/>", encoding="utf-8")
        assert loaded_session.import_file("eCW", path).error_type == "UnsupportedSourceError"

    def test_csv_import(self, loaded_session, tmp_path):
        path = tmp_path / "behavidance.csv"
        path.write_text("patientID,patientName,providers\nB1,Ann Lee,Behavidance\n", encoding="utf-8")

        assert loaded_session.import_file("Behavidance", path).value == 1
        assert loaded_session.last_result.identifiers()["Behavidance"] == ["B1"]

    def test_import_text(self, session):
        result = session.import_text("eCW", json.dumps([{"patientID": "T1", "providers": "eCW"}]))
        assert result.value == 1
        assert session.import_text("eCW", "nope").is_failure()

    def test_same_identifier_in_two_sources(self, loaded_session, tmp_path):
        batch = write_json(tmp_path / "quest.json", [{"patientID": "1", "providers": "Quest"}])
        assert loaded_session.import_file("Quest", batch).value == 1
        assert loaded_session.store.get("eCW", "1") is not None
        assert loaded_session.store.get("Quest", "1") is not None

    def test_async_import(self, loaded_session, tmp_path):
        batch = write_json(tmp_path / "amd.json", [{"patientID": "A9", "providers": "AMD"}])

        result = asyncio.run(loaded_session.import_file_async("AMD", batch))

        assert result.value == 1
        assert "A9" in loaded_session.last_result.identifiers()["AMD"]

    def test_async_import_failure(self, loaded_session, tmp_path):
        result = asyncio.run(loaded_session.import_file_async("AMD", tmp_path / "missing.json"))
        assert result.error_type == "SourceNotFoundError"


class TestPendingFiles:
    """Test the choose-then-load import flow."""

    def test_load_without_choice_reports_no_file(self, session):
        result = session.load_chosen("eCW")
        assert result.is_failure()
        assert result.error_type == "NoFileSelectedError"
        assert result.error == "No file selected for eCW"

    def test_new_choice_replaces_pending_one(self, session, tmp_path):
        first = write_json(tmp_path / "first.json", [{"patientID": "F1", "providers": "eCW"}])
        second = write_json(tmp_path / "second.json", [{"patientID": "S1", "providers": "eCW"}])

        session.choose_file("eCW", first)
        session.choose_file("eCW", second)
        assert session.pending_file("eCW") == second
        assert len(session.store) == 0

        assert session.load_chosen("eCW").value == 1
        assert [r.identifier for r in session.store.records("eCW")] == ["S1"]
        assert session.pending_file("eCW") is None

    def test_choice_is_per_source(self, session, tmp_path):
        path = write_json(tmp_path / "q.json", [{"patientID": "Q1", "providers": "Quest"}])
        session.choose_file("Quest", path)
        assert session.load_chosen("AMD").is_failure()
        assert session.load_chosen("Quest").is_success()

    def test_clearing_a_choice(self, session, tmp_path):
        session.choose_file("Quest", tmp_path / "q.json")
        session.choose_file("Quest", None)
        assert session.pending_file("Quest") is None


class TestSearchAndMerge:
    """Test search, selection and merge through the session."""

    def test_end_to_end_scenario(self, loaded_session):
        result = loaded_session.search(SearchCriteria(name="do", start_date="2024-03-01", end_date="2024-03-07"))
        assert {k: v for k, v in result.identifiers().items() if v} == {"eCW": ["1"]}

        assert loaded_session.select("eCW", "1").value is True
        assert loaded_session.select("AMD", "2").value is True
        merged = loaded_session.merge()

        composite = merged.value
        assert composite.identifier == "1, 2"
        assert composite.name == "John Doe, Jon Doe"
        assert composite.providers == "eCW, AMD"
        assert re.fullmatch(r"[0-9a-f]{6}", composite.composite_identifier)
        assert loaded_session.composite is composite

    def test_search_accepts_keyword_fields(self, loaded_session):
        result = loaded_session.search(gender="MALE", platform="AMD")
        assert result.identifiers()["AMD"] == ["2"]
        assert loaded_session.last_criteria.platform == "AMD"

    def test_numeric_keyword_fields_are_searched_as_text(self, loaded_session):
        result = loaded_session.search(zip=94110, name=None)
        assert result.total == 2
        assert loaded_session.last_criteria.zip == "94110"

        assert loaded_session.search(name=123).is_empty()

    def test_non_scalar_keyword_field_is_rejected(self, loaded_session):
        loaded_session.search(platform="AMD")

        with pytest.raises(InvalidCriteriaError, match="name"):
            loaded_session.search(name=["John"])

        assert loaded_session.last_criteria.platform == "AMD"

    def test_merge_clears_selection_once(self, loaded_session):
        loaded_session.select("eCW", "1")
        loaded_session.merge()
        assert len(loaded_session.selection) == 0

    def test_empty_merge_clears_composite(self, loaded_session):
        loaded_session.select("eCW", "1")
        assert loaded_session.merge().value is not None

        result = loaded_session.merge()

        assert result.is_success()
        assert result.value is None
        assert result.message == NOTHING_TO_MERGE
        assert loaded_session.composite is None

    def test_new_merge_replaces_composite(self, loaded_session):
        loaded_session.select("eCW", "1")
        first = loaded_session.merge().value
        loaded_session.select("AMD", "2")
        second = loaded_session.merge().value

        assert loaded_session.composite is second
        assert second.identifier == "2"
        assert second.composite_identifier != first.composite_identifier

    def test_composite_is_not_ingested(self, loaded_session):
        loaded_session.select("eCW", "1")
        loaded_session.select("AMD", "2")
        loaded_session.merge()

        assert len(loaded_session.store) == 2
        assert loaded_session.search().total == 2

    def test_composite_survives_search(self, loaded_session):
        loaded_session.select("eCW", "1")
        composite = loaded_session.merge().value
        loaded_session.search(name="jon")
        assert loaded_session.composite is composite

    def test_select_twice_deselects(self, loaded_session):
        loaded_session.select("eCW", "1")
        assert loaded_session.select("eCW", "1").value is False
        assert loaded_session.merge().value is None

    def test_is_selected(self, loaded_session):
        assert not loaded_session.is_selected("eCW", "1")
        loaded_session.select("eCW", "1")

        assert loaded_session.is_selected("eCW", "1")
        assert not loaded_session.is_selected("AMD", "2")
        assert not loaded_session.is_selected("eCW", "404")
        assert not loaded_session.is_selected("Epic", "1")

    def test_select_unknown_record(self, loaded_session):
        result = loaded_session.select("eCW", "404")
        assert result.is_failure()
        assert result.error_type == "RecordNotFound"

    def test_toggle_by_reference(self, loaded_session):
        record = loaded_session.store.get("AMD", "2")
        assert loaded_session.toggle(record, SourceName.AMD) is True
        assert loaded_session.merge().value.identifier == "2"

    def test_composite_identifier_avoids_stored_identifiers(self, tmp_path, scripted_ids, dataset_file):
        session = ReconciliationSession(identifier_factory=scripted_ids("aaaaaa", "bbbbbb"))
        session.load_dataset(dataset_file)
        session.import_text("Quest", json.dumps([{"patientID": "aaaaaa", "providers": "Quest"}]))

        session.select("Quest", "aaaaaa")
        assert session.merge().value.composite_identifier == "bbbbbb"

    def test_token_platform_mode(self, tmp_path):
        session = ReconciliationSession(platform_match=PlatformMatchMode.TOKEN)
        session.import_text("AMD", json.dumps([
            {"patientID": "1", "providers": "AMD"},
            {"patientID": "2", "providers": "AMD2"},
        ]))
        assert session.search(platform="AMD").identifiers()["AMD"] == ["1"]

    def test_reset(self, loaded_session):
        loaded_session.select("eCW", "1")
        loaded_session.merge()
        loaded_session.reset()

        assert len(loaded_session.store) == 0
        assert loaded_session.composite is None
        assert loaded_session.last_result is None
        assert loaded_session.last_criteria == SearchCriteria()


class TestExport:
    """Test export precedence and failures."""

    def test_nothing_to_export(self, session):
        result = session.export_csv()
        assert result.is_failure()
        assert result.error_type == "NothingToExportError"
        assert not session.csv_path.exists()

    def test_empty_result_is_nothing_to_export(self, loaded_session):
        loaded_session.search(name="nobody")
        assert loaded_session.export_csv().error_type == "NothingToExportError"

    def test_exports_filtered_results(self, loaded_session):
        loaded_session.search(name="john")
        path = loaded_session.export_csv().value

        lines = path.read_text(encoding="utf-8").splitlines()
        assert lines[0].startswith("userID,patientID,patientName")
        assert len(lines) == 2
        assert ",1,John Doe," in lines[1]

    def test_composite_wins_over_results(self, loaded_session):
        loaded_session.select("eCW", "1")
        loaded_session.select("AMD", "2")
        composite = loaded_session.merge().value

        path = loaded_session.export_csv().value
        lines = path.read_text(encoding="utf-8").splitlines()

        assert len(lines) == 2
        assert lines[1].startswith(composite.composite_identifier + ',"1, 2"')

    def test_save_composite(self, loaded_session):
        assert loaded_session.save_composite().is_failure()

        loaded_session.select("eCW", "1")
        composite = loaded_session.merge().value
        path = loaded_session.save_composite().value

        payload = json.loads(path.read_text(encoding="utf-8"))
        assert payload["userID"] == composite.composite_identifier
        assert path.name == "oonTop.json"

    def test_export_results_json(self, loaded_session, tmp_path):
        assert ReconciliationSession().export_results_json(tmp_path / "r.json").is_failure()

        path = loaded_session.export_results_json(tmp_path / "r.json").value
        payload = json.loads(path.read_text(encoding="utf-8"))
        assert [r["patientID"] for r in payload["AMD"]] == ["2"]


class TestFromConfig:
    """Test building a session from configuration."""

    def test_from_config(self, tmp_path):
        config = EngineConfig(export_dir=str(tmp_path), csv_filename="x.csv", platform_match="token")
        session = ReconciliationSession.from_config(config)

        assert session.csv_path == tmp_path / "x.csv"
        assert session.engine.platform_match == PlatformMatchMode.TOKEN
