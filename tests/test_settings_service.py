import logging
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from sms_manager.config import settings as app_settings
from sms_manager.context import build_context
from sms_manager.core.errors import ReadOnlyConfigRecord, RecordValidationError
from sms_manager.db import Base
from sms_manager.models import SmsSettings
from sms_manager.services.config_file import build_document


class SettingsServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_settings_service.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        db = self._session_factory()
        try:
            db.query(SmsSettings).delete()
            db.commit()
        finally:
            db.close()

    def _context(self, raw=None):
        return build_context(self._session_factory, build_document(raw or {}, 'production'))

    def test_defaults_apply_without_stored_row(self):
        ctx = self._context()
        current = ctx.settings.get()
        self.assertTrue(current.enable_logs)
        self.assertEqual(current.logs_retention, 30)
        self.assertIsNone(current.default_provider_handle)
        self.assertEqual(current.log_level, 'error')
        self.assertEqual(ctx.settings.overridden_fields(), [])

    def test_save_persists_a_single_row(self):
        ctx = self._context()
        saved = ctx.settings.save({'logs_limit': 500, 'default_provider_handle': 'p1'})
        self.assertEqual(saved.logs_limit, 500)
        self.assertEqual(saved.default_provider_handle, 'p1')

        ctx.settings.save({'default_provider_handle': None})
        db = self._session_factory()
        try:
            rows = db.query(SmsSettings).all()
            self.assertEqual(len(rows), 1)
            self.assertEqual(rows[0].logs_limit, 500)
            self.assertEqual(rows[0].default_provider_handle, '')
        finally:
            db.close()
        self.assertIsNone(ctx.settings.get().default_provider_handle)

    def test_document_values_win_and_are_read_only(self):
        ctx = self._context({'logsRetention': 90, 'enableAnalytics': False})
        before = ctx.document.model_dump()
        ctx.settings.save({'logs_limit': 42})
        current = ctx.settings.get()
        self.assertEqual(current.logs_retention, 90)
        self.assertFalse(current.enable_analytics)
        self.assertEqual(current.logs_limit, 42)
        self.assertTrue(ctx.settings.is_overridden('logs_retention'))
        self.assertEqual(set(ctx.settings.overridden_fields()), {'logs_retention', 'enable_analytics'})

        with self.assertRaises(ReadOnlyConfigRecord) as caught:
            ctx.settings.save({'logs_retention': 10})
        self.assertEqual(caught.exception.handle, 'logs_retention')
        self.assertEqual(ctx.document.model_dump(), before)

    def test_invalid_and_unknown_values_are_reported_per_field(self):
        ctx = self._context()
        with self.assertRaises(RecordValidationError) as caught:
            ctx.settings.save({'items_per_page': 5, 'refresh_interval_secs': 1})
        self.assertEqual(set(caught.exception.errors), {'items_per_page', 'refresh_interval_secs'})

        with self.assertRaises(RecordValidationError) as caught:
            ctx.settings.save({'bogus': 1})
        self.assertEqual(caught.exception.errors, {'bogus': 'Unknown setting'})

    def test_debug_log_level_is_downgraded_outside_development(self):
        ctx = self._context({'logLevel': 'debug'})
        with patch.object(app_settings, 'app_env', 'production'):
            self.assertEqual(ctx.settings.get().log_level, 'info')
        with patch.object(app_settings, 'app_env', 'dev'):
            self.assertEqual(ctx.settings.get().log_level, 'debug')

    def test_apply_log_level_sets_package_logger(self):
        ctx = self._context({'logLevel': 'warning'})
        package_logger = logging.getLogger('sms_manager')
        previous = package_logger.level
        try:
            self.assertEqual(ctx.settings.apply_log_level(), 'warning')
            self.assertEqual(package_logger.level, logging.WARNING)
        finally:
            package_logger.setLevel(previous)
