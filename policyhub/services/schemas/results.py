"""Result dataclasses returned by service operations."""

from dataclasses import dataclass, field

from db.enums import RowStatus
from policyhub.services._types import ImportRowDict, ImportSummaryDict


@dataclass
class InputReport:
    """Per-field findings for a set of rule inputs.

    ``errors`` block saving; ``warnings`` are advisory hints (malformed ICD codes).
    """

    errors: dict[str, str] = field(default_factory=dict)
    warnings: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class RowOutcome:
    row: int
    status: RowStatus
    inputs: dict[str, str]
    rule_id: str | None = None
    message: str | None = None
    warnings: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> ImportRowDict:
        return ImportRowDict(
            row=self.row,
            status=self.status.value,
            inputs=dict(self.inputs),
            rule_id=self.rule_id,
            message=self.message,
            warnings=dict(self.warnings),
        )


@dataclass
class ImportResult:
    ruletype_id: int
    project_id: int
    rows: list[RowOutcome] = field(default_factory=list)
    notice: str | None = None

    def _count(self, status: RowStatus) -> int:
        return sum(1 for r in self.rows if r.status == status)

    @property
    def created(self) -> int:
        return self._count(RowStatus.CREATED)

    @property
    def duplicates(self) -> int:
        return self._count(RowStatus.DUPLICATE)

    @property
    def invalid(self) -> int:
        return self._count(RowStatus.INVALID)

    @property
    def failed(self) -> int:
        return self._count(RowStatus.FAILED)

    def to_dict(self) -> ImportSummaryDict:
        return ImportSummaryDict(
            ruletype_id=self.ruletype_id,
            project_id=self.project_id,
            total=len(self.rows),
            created=self.created,
            duplicates=self.duplicates,
            invalid=self.invalid,
            failed=self.failed,
            notice=self.notice,
            rows=[r.to_dict() for r in self.rows],
        )
