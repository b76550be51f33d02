"""SQLAlchemy ORM models.

JSON payloads (custom fields, rule inputs, version snapshots) are stored as TEXT and
(de)serialized with policyhub.services._helpers.
"""

from typing import Any

from sqlalchemy import ForeignKey, MetaData, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=convention)

    def to_dict(self) -> dict[str, Any]:
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


class Clients(Base):
    __tablename__ = "clients"

    client_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    client_name: Mapped[str] = mapped_column(nullable=False)
    project_id: Mapped[int] = mapped_column(nullable=False)

    __table_args__ = (UniqueConstraint("project_id"),)


class RuleTypes(Base):
    __tablename__ = "rule_types"

    ruletype_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(nullable=False)
    custom_fields: Mapped[str] = mapped_column(nullable=False, default='{"fields": []}')
    created_at: Mapped[str] = mapped_column(nullable=False)

    __table_args__ = (UniqueConstraint("name"),)
    rules = relationship("Rules", back_populates="rule_type")


class Rules(Base):
    __tablename__ = "rules"

    rule_id: Mapped[str] = mapped_column(primary_key=True)
    project_id: Mapped[int] = mapped_column(nullable=False, index=True)
    category_id: Mapped[int] = mapped_column(nullable=False, default=71)
    ruletype_id: Mapped[int] = mapped_column(
        ForeignKey("rule_types.ruletype_id"),
        nullable=False,
        index=True,
    )
    inputs: Mapped[str] = mapped_column(nullable=False, default="{}")
    statement: Mapped[str | None] = mapped_column()
    rule_description: Mapped[str | None] = mapped_column()
    regex: Mapped[str | None] = mapped_column()
    valid_from: Mapped[str | None] = mapped_column()
    valid_till: Mapped[str | None] = mapped_column()
    version: Mapped[int] = mapped_column(nullable=False, default=1)
    created_at: Mapped[str | None] = mapped_column()
    updated_at: Mapped[str | None] = mapped_column()
    rule_type = relationship("RuleTypes", back_populates="rules")
    versions = relationship(
        "RuleVersions",
        back_populates="rule",
        cascade="all, delete-orphan",
        order_by="RuleVersions.version",
    )


class RuleVersions(Base):
    __tablename__ = "rule_versions"

    version_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    rule_id: Mapped[str] = mapped_column(ForeignKey("rules.rule_id"), nullable=False)
    version: Mapped[int] = mapped_column(nullable=False)
    data: Mapped[str] = mapped_column(nullable=False)
    changed_by: Mapped[str] = mapped_column(nullable=False, default="system")
    changed_at: Mapped[str] = mapped_column(nullable=False)

    __table_args__ = (UniqueConstraint("rule_id", "version"),)
    rule = relationship("Rules", back_populates="versions")
