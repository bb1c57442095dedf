"""The initial migration must create the same tables and columns as the ORM models."""

import importlib.util
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import sqlalchemy as sa

from autoconcierge.infrastructure.database import Base
import autoconcierge.infrastructure.models  # noqa: F401  registers tables

MIGRATION = Path(__file__).resolve().parents[1] / "migrations" / "versions" / "001_initial_schema.py"


@pytest.fixture
def created_tables(monkeypatch) -> dict[str, set[str]]:
    spec = importlib.util.spec_from_file_location("initial_schema", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    op = MagicMock()
    monkeypatch.setattr(module, "op", op)
    for enum_type in module.ENUMS:
        monkeypatch.setattr(enum_type, "create", MagicMock())
    module.upgrade()

    tables = {}
    for call in op.create_table.call_args_list:
        name, *items = call.args
        tables[name] = {item.name for item in items if isinstance(item, sa.Column)}
    return tables


def test_migration_matches_models(created_tables):
    expected = {
        name: {column.name for column in table.columns}
        for name, table in Base.metadata.tables.items()
    }
    assert created_tables == expected
