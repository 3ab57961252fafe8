"""Tests for database migrations."""

import importlib.util
import sys
from pathlib import Path
from types import ModuleType

import pytest

VERSIONS = Path(__file__).parent.parent / "alembic/versions"


def _load(filename: str) -> ModuleType:
    path = VERSIONS / filename
    module_spec = importlib.util.spec_from_file_location(f"migration_{path.stem}", path)
    assert module_spec is not None
    assert module_spec.loader is not None
    module = importlib.util.module_from_spec(module_spec)
    sys.modules[module_spec.name] = module
    module_spec.loader.exec_module(module)
    return module


class TestMigrationChain:
    """Tests for migration script structure."""

    def test_initial_revision(self) -> None:
        module = _load("001_initial_schema.py")
        assert module.revision == "001"
        assert module.down_revision is None
        assert callable(module.upgrade)
        assert callable(module.downgrade)

    def test_second_revision_follows_first(self) -> None:
        module = _load("002_users_sessions_feedback.py")
        assert module.revision == "002"
        assert module.down_revision == "001"

    def test_single_head(self) -> None:
        modules = [_load(p.name) for p in sorted(VERSIONS.glob("*.py"))]
        revisions = {m.revision for m in modules}
        parents = {m.down_revision for m in modules}
        assert revisions - parents == {"002"}


class TestMigrationOperations:
    """Tests for verifying upgrade and downgrade structures."""

    @pytest.fixture
    def initial_source(self) -> str:
        return (VERSIONS / "001_initial_schema.py").read_text()

    @pytest.fixture
    def auth_source(self) -> str:
        return (VERSIONS / "002_users_sessions_feedback.py").read_text()

    @pytest.mark.parametrize("table", ["stations", "routes", "trains", "daily_status"])
    def test_initial_creates_table(self, initial_source: str, table: str) -> None:
        assert f'op.create_table(\n        "{table}"' in initial_source

    @pytest.mark.parametrize("table", ["users", "sessions", "feedback"])
    def test_second_creates_table(self, auth_source: str, table: str) -> None:
        assert f'op.create_table(\n        "{table}"' in auth_source

    def test_daily_status_upsert_constraint(self, initial_source: str) -> None:
        assert '"uq_daily_status_train_date"' in initial_source

    def test_downgrade_respects_fk_order(self, initial_source: str, auth_source: str) -> None:
        downgrade = initial_source.split("def downgrade")[1]
        order = [
            downgrade.find(f'op.drop_table("{t}")')
            for t in ("daily_status", "trains", "routes", "stations")
        ]
        assert all(pos >= 0 for pos in order)
        assert order == sorted(order)

        downgrade = auth_source.split("def downgrade")[1]
        assert downgrade.find('op.drop_table("sessions")') < downgrade.find(
            'op.drop_table("users")'
        )
