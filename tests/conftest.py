"""Shared test fixtures and configuration.

Sets up environment variables so famcoins.config loads predictable settings,
and provides record stores (SQLite and in-memory) seeded with task templates.
"""

import os
import tempfile

# Patch env vars BEFORE any famcoins imports
os.environ.setdefault("STORE_BACKEND", "sqlite")
os.environ.setdefault(
    "DATABASE_PATH", os.path.join(tempfile.gettempdir(), "famcoins-tests.db"),
)
os.environ.setdefault("FAMCOIN_CONVERSION_RATE", "10")
os.environ.setdefault("DEFAULT_CURRENCY_CODE", "GBP")
os.environ.setdefault("MONTHLY_WEEKS", "4.34")
os.environ.setdefault("ONGOING_YEARS", "10")
os.environ.setdefault("REMAINDER_POLICY", "unallocated")

from datetime import date

import pytest
import pytest_asyncio

TEMPLATES = [
    {"id": "tpl-bed", "name": "Make bed", "effort_score": 1},
    {"id": "tpl-teeth", "name": "Brush teeth", "effort_score": 1},
    {"id": "tpl-homework", "name": "Homework", "effort_score": 3, "photo_proof_required": True},
    {"id": "tpl-dishes", "name": "Dishes", "effort_score": 2},
]

# name -> (active_days, template ids)
DEFAULT_GROUPS = {
    "Mornings": ([1, 3, 5], ["tpl-bed", "tpl-teeth"]),
    "Weekend": ([6, 7], ["tpl-dishes"]),
}


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_famcoins.db")


@pytest.fixture
def sequence_db(tmp_db_path):
    """Return a SequenceDB instance backed by a temp file."""
    from famcoins.data.db import SequenceDB
    return SequenceDB(db_path=tmp_db_path)


@pytest.fixture
def draft_store(tmp_path):
    """Return a DraftStore instance backed by a temp file."""
    from famcoins.data.db import DraftStore
    return DraftStore(db_path=str(tmp_path / "test_drafts.db"))


@pytest_asyncio.fixture(params=["sqlite", "memory"])
async def store(request, tmp_db_path):
    """A record store seeded with TEMPLATES, once per backend."""
    if request.param == "sqlite":
        from famcoins.adapters.sqlite_store import SQLiteRecordStore
        record_store = SQLiteRecordStore(db_path=tmp_db_path)
    else:
        from famcoins.adapters.memory_store import MemoryRecordStore
        record_store = MemoryRecordStore()
    await record_store.insert_many("task_templates", TEMPLATES)
    return record_store


@pytest.fixture
def queries(store):
    from famcoins.core.sequences import SequenceQueries
    return SequenceQueries(store)


@pytest.fixture
def materializer(store):
    from famcoins.adapters.template_catalog import StoreTemplateCatalog
    from famcoins.core.currency import RemainderPolicy
    from famcoins.core.materializer import SequenceMaterializer
    return SequenceMaterializer(
        store,
        StoreTemplateCatalog(store),
        conversion_rate=10,
        monthly_weeks=4.34,
        ongoing_years=10,
        remainder_policy=RemainderPolicy.UNALLOCATED,
    )


@pytest.fixture
def make_draft():
    """Factory for complete, submittable drafts.

    Defaults: weekly from Mon Jan 1 2024, budget 10 (100 FAMCOINS), groups
    from DEFAULT_GROUPS.
    """
    from famcoins.core.draft import DraftGroup, DraftSettings, SequenceDraft

    def _make(
        child_id="child-1",
        period="weekly",
        start=date(2024, 1, 1),
        budget=10.0,
        groups=None,
        ongoing=False,
    ):
        groups = DEFAULT_GROUPS if groups is None else groups
        draft_groups = []
        tasks = {}
        for name, (days, template_ids) in groups.items():
            group = DraftGroup(name=name, active_days=days)
            draft_groups.append(group)
            tasks[group.id] = list(template_ids)
        return SequenceDraft(
            parent_id="parent-1",
            selected_child_id=child_id,
            settings=DraftSettings(
                period=period,
                start_date=start,
                budget=budget,
                budget_famcoins=int(budget * 10),
                ongoing=ongoing,
            ),
            groups=draft_groups,
            selected_tasks_by_group=tasks,
        )

    return _make
