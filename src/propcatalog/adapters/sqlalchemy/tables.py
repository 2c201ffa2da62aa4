"""SQLAlchemy Core tables for the in-process catalog store."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    event,
    func,
)

from propcatalog.domain.model import AddonValueType, RuleType

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_label)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)


def new_id() -> str:
    return uuid.uuid4().hex


# Catalog entities ------------------------------------------------------------

plan_table = Table(
    "plan",
    metadata,
    Column("id", String, primary_key=True, default=new_id),
    Column("name", String, nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("external_product_id", Integer, nullable=True),
)

category_table = Table(
    "category",
    metadata,
    Column("id", String, primary_key=True, default=new_id),
    Column("name", String, nullable=False),
)

balance_table = Table(
    "balance",
    metadata,
    Column("id", String, primary_key=True, default=new_id),
    Column("name", String, nullable=False),
    Column("amount", Float, nullable=True),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("has_discount", Boolean, nullable=False, default=False),
    Column("discount_percent", Float, nullable=True),
)

stage_table = Table(
    "stage",
    metadata,
    Column("id", String, primary_key=True, default=new_id),
    Column("name", String, nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
)

stage_rule_table = Table(
    "stage_rule",
    metadata,
    Column("id", String, primary_key=True, default=new_id),
    Column("rule_type", Enum(RuleType, native_enum=False), nullable=False),
    Column("slug", String, nullable=False, unique=True),
    Column("name", String, nullable=True),
    Column("description", String, nullable=True),
)

addon_table = Table(
    "addon",
    metadata,
    Column("id", String, primary_key=True, default=new_id),
    Column("name", String, nullable=False),
    Column("value_type", Enum(AddonValueType, native_enum=False), nullable=False),
    Column("slug_rule", String, nullable=True),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("has_discount", Boolean, nullable=False, default=False),
    Column("discount_percent", Float, nullable=True),
)

# Relations and their associations --------------------------------------------

relation_table = Table(
    "relation",
    metadata,
    Column("id", String, primary_key=True, default=new_id),
    Column("plan_id", String, ForeignKey("plan.id", ondelete="CASCADE"), nullable=False),
    Column(
        "category_id", String, ForeignKey("category.id", ondelete="CASCADE"), nullable=True
    ),
    Column("group_name", String, nullable=True),
)

# A plain UNIQUE treats NULLs as distinct; a missing category is a key value here.
Index(
    "uq_relation_selection_key",
    relation_table.c.plan_id,
    func.coalesce(relation_table.c.category_id, ""),
    unique=True,
)

relation_balance_table = Table(
    "relation_balance",
    metadata,
    Column(
        "relation_id", String, ForeignKey("relation.id", ondelete="CASCADE"), primary_key=True
    ),
    Column("balance_id", String, ForeignKey("balance.id", ondelete="CASCADE"), primary_key=True),
    Column("price", Float, nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("has_discount", Boolean, nullable=False, default=False),
    Column("discount_percent", Float, nullable=True),
    Column("external_variation_id", Integer, nullable=True),
)

relation_addon_table = Table(
    "relation_addon",
    metadata,
    Column(
        "relation_id", String, ForeignKey("relation.id", ondelete="CASCADE"), primary_key=True
    ),
    Column("addon_id", String, ForeignKey("addon.id", ondelete="CASCADE"), primary_key=True),
    Column("value", JSON, nullable=True),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("has_discount", Boolean, nullable=False, default=False),
    Column("discount_percent", Float, nullable=True),
    Column("external_variation_id", Integer, nullable=True),
)

relation_stage_table = Table(
    "relation_stage",
    metadata,
    Column("id", String, primary_key=True, default=new_id),
    Column("relation_id", String, ForeignKey("relation.id", ondelete="CASCADE"), nullable=False),
    Column("stage_id", String, ForeignKey("stage.id", ondelete="CASCADE"), nullable=False),
    Column("num_phase", Integer, nullable=False),
    UniqueConstraint("relation_id", "num_phase", name="uq_relation_stage_phase"),
    UniqueConstraint("relation_id", "stage_id", name="uq_relation_stage_stage"),
)

stage_parameter_table = Table(
    "stage_parameter",
    metadata,
    Column(
        "relation_stage_id",
        String,
        ForeignKey("relation_stage.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("rule_id", String, ForeignKey("stage_rule.id", ondelete="CASCADE"), primary_key=True),
    Column("value", JSON, nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
)


def enable_sqlite_foreign_keys(engine: Engine) -> None:
    """SQLite ignores ``ON DELETE CASCADE`` unless foreign keys are switched on per connection."""

    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _set_pragma(dbapi_connection: object, connection_record: object) -> None:
        _ = connection_record
        cursor = dbapi_connection.cursor()  # type: ignore[attr-defined]
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_all_tables(engine: Engine) -> None:
    metadata.create_all(engine)
