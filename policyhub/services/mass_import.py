"""Bulk rule creation from delimited files."""

from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from pathlib import Path

import structlog

from config import get_settings
from db.enums import RowStatus
from policyhub.services.authoring import RuleAuthoringService
from policyhub.services.delimited import decode_table, parse_table, read_table, select_columns
from policyhub.services.duplicates import find_duplicate
from policyhub.services.errors import PolicyError, PolicyValidationError
from policyhub.services.schemas.domain import ParsedTable, Rule, RuleDraft, RuleType
from policyhub.services.schemas.results import ImportResult, RowOutcome
from policyhub.services.statement import generate_statement
from policyhub.services.store import RuleStore
from policyhub.services.validators import validate_inputs

logger = structlog.get_logger(__name__)


def map_columns(rule_type: RuleType, columns: Sequence[str]) -> dict[str, str]:
    """Input key for each selected column.

    A column whose header equals a field key maps to it; otherwise a case-insensitive
    label match is tried; otherwise the header itself is used as the key.
    """
    keys: set[str] = {f.key for f in rule_type.custom_fields}
    by_label: dict[str, str] = {f.label.casefold(): f.key for f in rule_type.custom_fields}
    return {c: c if c in keys else by_label.get(c.casefold(), c) for c in columns}


class MassImportService:
    """Turns parsed rows into rules of one rule type for one project.

    Rows are validated and duplicate-checked in file order, against stored rules and
    against earlier rows of the same file. Creation of the surviving rows runs on a
    thread pool when the store allows concurrent writes.
    """

    def __init__(self, store: RuleStore, max_workers: int | None = None):
        self.store = store
        self.authoring = RuleAuthoringService(store)
        self.max_workers: int = max_workers or get_settings().import_max_workers

    def parse(self, raw_text: str) -> ParsedTable:
        return parse_table(raw_text)

    def parse_bytes(self, raw: bytes) -> ParsedTable:
        return decode_table(raw)

    def parse_file(self, path: Path) -> ParsedTable:
        return read_table(path)

    def import_text(
        self,
        raw_text: str,
        project_id: int,
        ruletype_id: int,
        columns: Sequence[str] | None = None,
        allow_duplicates: bool = False,
        category_id: int | None = None,
    ) -> ImportResult:
        return self.import_table(
            self.parse(raw_text), project_id, ruletype_id, columns, allow_duplicates, category_id
        )

    def import_table(
        self,
        table: ParsedTable,
        project_id: int,
        ruletype_id: int,
        columns: Sequence[str] | None = None,
        allow_duplicates: bool = False,
        category_id: int | None = None,
    ) -> ImportResult:
        """Create one rule per data row.

        ``columns`` defaults to every header. Rows missing required inputs are
        reported as invalid, rows equal to an existing rule as duplicates (unless
        ``allow_duplicates``), and store failures as failed; none of them stop the
        remaining rows.
        """
        result = ImportResult(ruletype_id=ruletype_id, project_id=project_id, notice=table.notice)
        if table.is_empty:
            result.notice = table.notice or "No data rows found"
            logger.info("Mass import skipped", reason=result.notice)
            return result

        selected: list[str] = list(table.headers) if columns is None else list(columns)
        if not selected:
            raise PolicyValidationError(
                "Select at least one column to import", {"columns": "required"}
            )
        unknown: list[str] = [c for c in selected if c not in table.headers]
        if unknown:
            raise PolicyValidationError(
                f"Unknown columns: {', '.join(unknown)}", {"columns": "not in file headers"}
            )

        rule_type: RuleType = self.authoring.require_rule_type(ruletype_id)
        column_keys: dict[str, str] = map_columns(rule_type, selected)
        known: list[Rule] = self.store.list_rules(project_id, ruletype_id)
        pending: list[tuple[RowOutcome, RuleDraft]] = []

        for index, row in enumerate(select_columns(table.rows, selected), start=1):
            provided: dict[str, str] = {column_keys[c]: v for c, v in row.items()}
            inputs = self.authoring.build_inputs(rule_type, provided)
            outcome = RowOutcome(row=index, status=RowStatus.CREATED, inputs=dict(inputs))
            result.rows.append(outcome)

            report = validate_inputs(rule_type, inputs)
            if not report.ok:
                outcome.status = RowStatus.INVALID
                outcome.message = "; ".join(report.errors.values())
                continue
            outcome.warnings = dict(report.warnings)

            duplicate = find_duplicate(known, ruletype_id, inputs)
            if duplicate is not None and not allow_duplicates:
                outcome.status = RowStatus.DUPLICATE
                outcome.message = f"Duplicate of {duplicate.rule_id}"
                continue

            draft = RuleDraft(
                project_id=project_id,
                ruletype_id=ruletype_id,
                inputs=inputs,
                category_id=category_id,
                statement=generate_statement(rule_type, inputs),
            )
            pending.append((outcome, draft))
            # Later rows in this file must see this one as existing.
            known.append(
                Rule(
                    rule_id=f"row {index}",
                    project_id=project_id,
                    category_id=category_id or 0,
                    ruletype_id=ruletype_id,
                    inputs=inputs,
                )
            )

        self._dispatch(pending)
        logger.info(
            "Mass import complete",
            project_id=project_id,
            ruletype_id=ruletype_id,
            total=len(result.rows),
            created=result.created,
            duplicates=result.duplicates,
            invalid=result.invalid,
            failed=result.failed,
        )
        return result

    def _dispatch(self, pending: list[tuple[RowOutcome, RuleDraft]]) -> None:
        if self.store.concurrent_writes and self.max_workers > 1 and len(pending) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures: dict[Future[Rule], RowOutcome] = {
                    pool.submit(self.store.create_rule, draft): outcome
                    for outcome, draft in pending
                }
                for future in as_completed(futures):
                    outcome = futures[future]
                    try:
                        outcome.rule_id = future.result().rule_id
                    except PolicyError as exc:
                        self._fail(outcome, exc)
                    except Exception as exc:
                        self._crash(outcome, exc)
            return

        for outcome, draft in pending:
            try:
                outcome.rule_id = self.store.create_rule(draft).rule_id
            except PolicyError as exc:
                self._fail(outcome, exc)
            except Exception as exc:
                self._crash(outcome, exc)

    @staticmethod
    def _fail(outcome: RowOutcome, exc: PolicyError) -> None:
        outcome.status = RowStatus.FAILED
        outcome.message = str(exc)
        logger.warning("Mass import row failed", row=outcome.row, error=str(exc))

    @staticmethod
    def _crash(outcome: RowOutcome, exc: Exception) -> None:
        outcome.status = RowStatus.FAILED
        outcome.message = f"{type(exc).__name__}: {exc}"
        logger.exception("Mass import row crashed", row=outcome.row)
