"""Tests for policyhub.services.mass_import."""

import threading
from pathlib import Path

import pytest

from db.enums import RowStatus
from policyhub.services.errors import PolicyValidationError, TransportError
from policyhub.services.mass_import import MassImportService, map_columns
from policyhub.services.schemas import ParsedTable, Rule, RuleDraft, RuleType
from policyhub.services.store import SqlRuleStore


@pytest.fixture()
def svc(store: SqlRuleStore) -> MassImportService:
    return MassImportService(store)


class TestMapColumns:
    def test_key_label_and_passthrough(self, phrase_type: RuleType) -> None:
        mapping = map_columns(phrase_type, ["phrase_text", "DIAGNOSIS", "note"])
        assert mapping == {"phrase_text": "phrase_text", "DIAGNOSIS": "icd", "note": "note"}


class TestImport:
    def test_creates_one_rule_per_row(
        self, svc: MassImportService, store: SqlRuleStore, phrase_type: RuleType
    ) -> None:
        result = svc.import_text(
            "Phrase Text,Diagnosis\nfever,R50.9\ncough,R05\n",
            project_id=1,
            ruletype_id=phrase_type.ruletype_id,
        )
        assert result.created == 2
        assert [r.status for r in result.rows] == [RowStatus.CREATED, RowStatus.CREATED]
        assert all(r.rule_id for r in result.rows)
        statements = sorted(r.statement or "" for r in store.list_rules(1))
        assert statements == [
            "Phrase Match: Phrase Text: cough | Diagnosis: R05",
            "Phrase Match: Phrase Text: fever | Diagnosis: R50.9",
        ]

    def test_missing_required_rows_are_invalid(
        self, svc: MassImportService, phrase_type: RuleType
    ) -> None:
        result = svc.import_text(
            "phrase_text,icd\n,A10\nfever,\n", project_id=1, ruletype_id=phrase_type.ruletype_id
        )
        assert [r.status for r in result.rows] == [RowStatus.INVALID, RowStatus.CREATED]
        assert result.rows[0].message == "phrase_text is required"

    def test_malformed_icd_is_created_with_warning(
        self, svc: MassImportService, store: SqlRuleStore, phrase_type: RuleType
    ) -> None:
        result = svc.import_text(
            "phrase_text,icd\nfever,r50\ncough,R05\n",
            project_id=1,
            ruletype_id=phrase_type.ruletype_id,
        )
        assert result.created == 2
        assert set(result.rows[0].warnings) == {"icd"}
        assert result.rows[1].warnings == {}
        assert result.to_dict()["rows"][0]["warnings"] == result.rows[0].warnings
        [stored] = [r for r in store.list_rules(1) if r.inputs["phrase_text"] == "fever"]
        assert stored.inputs["icd"] == "r50"

    def test_existing_rule_is_duplicate(
        self, svc: MassImportService, store: SqlRuleStore, phrase_type: RuleType
    ) -> None:
        store.create_rule(
            RuleDraft(
                project_id=999,
                ruletype_id=phrase_type.ruletype_id,
                inputs={"phrase_text": "fever", "icd": ""},
            )
        )
        result = svc.import_text(
            "phrase_text\nfever\ncough", project_id=1, ruletype_id=phrase_type.ruletype_id
        )
        assert [r.status for r in result.rows] == [RowStatus.DUPLICATE, RowStatus.CREATED]
        assert result.duplicates == 1

    def test_repeated_rows_in_one_file(
        self, svc: MassImportService, phrase_type: RuleType
    ) -> None:
        result = svc.import_text(
            "phrase_text\nfever\nfever", project_id=1, ruletype_id=phrase_type.ruletype_id
        )
        assert [r.status for r in result.rows] == [RowStatus.CREATED, RowStatus.DUPLICATE]
        assert result.rows[1].message == "Duplicate of row 1"

    def test_allow_duplicates(
        self, svc: MassImportService, store: SqlRuleStore, phrase_type: RuleType
    ) -> None:
        result = svc.import_text(
            "phrase_text\nfever\nfever",
            project_id=1,
            ruletype_id=phrase_type.ruletype_id,
            allow_duplicates=True,
        )
        assert result.created == 2
        assert len(store.list_rules(1)) == 2

    def test_selected_columns_only(self, svc: MassImportService, phrase_type: RuleType) -> None:
        result = svc.import_text(
            "phrase_text,icd\nfever,R50.9",
            project_id=1,
            ruletype_id=phrase_type.ruletype_id,
            columns=["phrase_text"],
        )
        assert result.rows[0].inputs == {"phrase_text": "fever", "icd": ""}

    def test_empty_selection_rejected(
        self, svc: MassImportService, phrase_type: RuleType
    ) -> None:
        with pytest.raises(PolicyValidationError):
            svc.import_text("a\n1", project_id=1, ruletype_id=phrase_type.ruletype_id, columns=[])

    def test_unknown_column_rejected(
        self, svc: MassImportService, phrase_type: RuleType
    ) -> None:
        with pytest.raises(PolicyValidationError):
            svc.import_text(
                "a\n1", project_id=1, ruletype_id=phrase_type.ruletype_id, columns=["zz"]
            )

    def test_unknown_rule_type(self, svc: MassImportService) -> None:
        with pytest.raises(PolicyValidationError):
            svc.import_text("a\n1", project_id=1, ruletype_id=404)

    def test_empty_file_reports_notice(
        self, svc: MassImportService, phrase_type: RuleType
    ) -> None:
        result = svc.import_text("", project_id=1, ruletype_id=phrase_type.ruletype_id)
        assert result.rows == []
        assert result.notice == "No data rows found"

    def test_unreadable_file_keeps_its_notice(
        self, svc: MassImportService, phrase_type: RuleType, tmp_path: Path
    ) -> None:
        table = svc.parse_file(tmp_path / "missing.csv")
        result = svc.import_table(table, project_id=1, ruletype_id=phrase_type.ruletype_id)
        assert result.rows == []
        assert result.notice is not None
        assert "missing.csv" in result.notice

    def test_summary_dict(self, svc: MassImportService, phrase_type: RuleType) -> None:
        summary = svc.import_text(
            "phrase_text\nfever\n\nfever\n", project_id=1, ruletype_id=phrase_type.ruletype_id
        ).to_dict()
        assert summary["total"] == 2
        assert summary["created"] == 1
        assert summary["duplicates"] == 1
        assert summary["rows"][0]["status"] == "created"


class _FlakyStore:
    """Wraps a real store; fails creation for one phrase and records worker threads."""

    concurrent_writes = True

    def __init__(self, inner: SqlRuleStore, fail_on: str, error: Exception | None = None):
        self.inner = inner
        self.fail_on = fail_on
        self.error = error or TransportError("remote store returned 500", status_code=500)
        self.threads: set[int] = set()
        self._lock = threading.Lock()
        self.created: list[RuleDraft] = []

    def get_rule_type(self, ruletype_id: int) -> RuleType:
        return self.inner.get_rule_type(ruletype_id)

    def list_rules(self, project_id: int, ruletype_id: int | None = None) -> list[Rule]:
        return self.inner.list_rules(project_id, ruletype_id)

    def create_rule(self, draft: RuleDraft) -> Rule:
        with self._lock:
            self.threads.add(threading.get_ident())
            if draft.inputs.get("phrase_text") == self.fail_on:
                raise self.error
            self.created.append(draft)
            return Rule(
                rule_id=f"rule_{len(self.created)}",
                project_id=draft.project_id,
                category_id=71,
                ruletype_id=draft.ruletype_id,
                inputs=draft.inputs,
            )


class TestConcurrentDispatch:
    def test_partial_failure_reported_per_row(
        self, store: SqlRuleStore, phrase_type: RuleType
    ) -> None:
        flaky = _FlakyStore(store, fail_on="boom")
        svc = MassImportService(flaky, max_workers=4)  # type: ignore[arg-type]
        result = svc.import_text(
            "phrase_text\na\nboom\nb\nc", project_id=1, ruletype_id=phrase_type.ruletype_id
        )
        assert [r.status for r in result.rows] == [
            RowStatus.CREATED,
            RowStatus.FAILED,
            RowStatus.CREATED,
            RowStatus.CREATED,
        ]
        assert result.rows[1].message == "remote store returned 500"
        assert result.rows[1].rule_id is None
        assert len(flaky.created) == 3
        assert threading.get_ident() not in flaky.threads

    def test_sequential_when_store_disallows_concurrency(
        self, store: SqlRuleStore, phrase_type: RuleType
    ) -> None:
        flaky = _FlakyStore(store, fail_on="boom")
        flaky.concurrent_writes = False
        svc = MassImportService(flaky, max_workers=4)  # type: ignore[arg-type]
        result = svc.import_text(
            "phrase_text\na\nboom", project_id=1, ruletype_id=phrase_type.ruletype_id
        )
        assert result.created == 1
        assert result.failed == 1
        assert flaky.threads == {threading.get_ident()}

    @pytest.mark.parametrize("concurrent", [True, False])
    def test_unexpected_error_fails_only_its_row(
        self, store: SqlRuleStore, phrase_type: RuleType, concurrent: bool
    ) -> None:
        flaky = _FlakyStore(store, fail_on="boom", error=ConnectionResetError(104, "reset"))
        flaky.concurrent_writes = concurrent
        svc = MassImportService(flaky, max_workers=4)  # type: ignore[arg-type]
        result = svc.import_text(
            "phrase_text\na\nboom\nb", project_id=1, ruletype_id=phrase_type.ruletype_id
        )
        assert [r.status for r in result.rows] == [
            RowStatus.CREATED,
            RowStatus.FAILED,
            RowStatus.CREATED,
        ]
        assert result.rows[1].message is not None
        assert result.rows[1].message.startswith("ConnectionResetError")
        assert len(flaky.created) == 2

    def test_parse_table_passthrough(self, svc: MassImportService) -> None:
        assert svc.parse("a|b\n1|2") == ParsedTable(headers=["a", "b"], rows=[{"a": "1", "b": "2"}])
