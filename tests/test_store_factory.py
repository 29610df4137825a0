"""Tests for the record store factory and the template catalog adapter."""

import pytest
from unittest.mock import patch

from famcoins.adapters.memory_store import MemoryRecordStore
from famcoins.adapters.sqlite_store import SQLiteRecordStore
from famcoins.adapters.store_factory import create_record_store, create_template_catalog
from famcoins.adapters.template_catalog import StoreTemplateCatalog


class TestCreateRecordStore:
    @patch("famcoins.adapters.store_factory.settings")
    def test_returns_sqlite_store(self, mock_settings, tmp_db_path):
        mock_settings.STORE_BACKEND = "sqlite"
        mock_settings.DATABASE_PATH = tmp_db_path
        assert isinstance(create_record_store(), SQLiteRecordStore)

    @patch("famcoins.adapters.store_factory.settings")
    def test_returns_memory_store(self, mock_settings):
        mock_settings.STORE_BACKEND = "memory"
        assert isinstance(create_record_store(), MemoryRecordStore)

    @patch("famcoins.adapters.store_factory.settings")
    def test_case_insensitive(self, mock_settings):
        mock_settings.STORE_BACKEND = "Memory"
        assert isinstance(create_record_store(), MemoryRecordStore)

    @patch("famcoins.adapters.store_factory.settings")
    def test_path_override(self, mock_settings, tmp_path):
        mock_settings.STORE_BACKEND = "sqlite"
        mock_settings.DATABASE_PATH = "/nonexistent/should-not-be-used.db"
        create_record_store(db_path=str(tmp_path / "nested" / "override.db"))
        assert (tmp_path / "nested" / "override.db").exists()

    @patch("famcoins.adapters.store_factory.settings")
    def test_unknown_backend_raises(self, mock_settings):
        mock_settings.STORE_BACKEND = "postgres"
        with pytest.raises(ValueError, match="Unknown STORE_BACKEND"):
            create_record_store()


class TestTemplateCatalog:
    def test_factory(self):
        assert isinstance(create_template_catalog(MemoryRecordStore()), StoreTemplateCatalog)

    @pytest.mark.asyncio
    async def test_get_templates_by_ids(self, store):
        catalog = StoreTemplateCatalog(store)
        templates = await catalog.get_templates_by_ids(["tpl-homework", "tpl-bed", "tpl-bed"])
        by_id = {t.id: t for t in templates}
        assert set(by_id) == {"tpl-homework", "tpl-bed"}
        assert by_id["tpl-homework"].photo_proof_required is True
        assert by_id["tpl-homework"].effort_score == 3
        assert by_id["tpl-bed"].photo_proof_required is False

    @pytest.mark.asyncio
    async def test_empty_ids(self, store):
        assert await StoreTemplateCatalog(store).get_templates_by_ids([]) == []
