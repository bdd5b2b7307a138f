import json
import tempfile
import unittest
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from sms_manager.context import build_context
from sms_manager.core.errors import ReadOnlyConfigRecord, RecordNotFound, RecordValidationError
from sms_manager.db import Base
from sms_manager.models import SmsProvider, SmsSenderId, SmsSettings
from sms_manager.services.config_file import build_document
from sms_manager.services.record_resolver import ConfigRecord, RecordKind, StoreRecord


CONFIG = {
    'providers': {
        'cfg-b': {'name': 'Bravo', 'type': 'mpp-sms', 'settings': {'apiKey': 'k'}},
        'cfg-a': {'name': 'Alpha', 'type': 'log-only', 'enabled': False},
        'shared': {'name': 'Shared from config', 'type': 'log-only'},
    },
    'senderIds': {
        'cfg-sender': {'name': 'Config sender', 'provider': 'cfg-b', 'senderId': 'CFG'},
    },
}


class RecordResolverTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_record_resolver.db'
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
            db.query(SmsSenderId).delete()
            db.query(SmsProvider).delete()
            db.query(SmsSettings).delete()
            db.commit()
        finally:
            db.close()

    def _context(self, raw=CONFIG):
        return build_context(self._session_factory, build_document(raw, 'production'))

    def _add_provider(self, handle, name, enabled=True, type_='log-only'):
        db = self._session_factory()
        try:
            row = SmsProvider(handle=handle, name=name, type=type_, enabled=enabled, settings_json=json.dumps({'x': 1}))
            db.add(row)
            db.commit()
            return row.id
        finally:
            db.close()

    def _add_sender(self, handle, name, provider_handle, enabled=True):
        db = self._session_factory()
        try:
            row = SmsSenderId(handle=handle, name=name, provider_handle=provider_handle, sender_value='STORE', enabled=enabled)
            db.add(row)
            db.commit()
            return row.id
        finally:
            db.close()

    def test_find_all_lists_config_then_store_each_by_name(self):
        ctx = self._context()
        self._add_provider('store-z', 'Zulu')
        self._add_provider('store-c', 'Charlie')
        self._add_provider('shared', 'Shared from store')

        items = ctx.resolver.find_all(RecordKind.PROVIDER)
        self.assertEqual([(item.handle, item.origin) for item in items], [
            ('cfg-a', 'config'),
            ('cfg-b', 'config'),
            ('shared', 'config'),
            ('store-c', 'store'),
            ('store-z', 'store'),
        ])
        self.assertEqual(
            [item.handle for item in ctx.resolver.find_all_enabled(RecordKind.PROVIDER)],
            ['cfg-b', 'shared', 'store-c', 'store-z'],
        )

    def test_config_shadows_store_on_handle_and_id(self):
        ctx = self._context()
        shadowed_id = self._add_provider('shared', 'Shared from store')
        store_id = self._add_provider('store-only', 'Store only')

        by_handle = ctx.resolver.find_by_handle(RecordKind.PROVIDER, 'shared')
        self.assertIsInstance(by_handle, ConfigRecord)
        self.assertEqual(by_handle.record.name, 'Shared from config')
        self.assertFalse(by_handle.editable)
        self.assertTrue(ctx.resolver.is_config_handle(RecordKind.PROVIDER, 'shared'))
        self.assertFalse(ctx.resolver.is_config_handle(RecordKind.SENDER_ID, 'shared'))

        by_id = ctx.resolver.resolve(RecordKind.PROVIDER, shadowed_id)
        self.assertIsInstance(by_id, ConfigRecord)

        store = ctx.resolver.resolve(RecordKind.PROVIDER, store_id)
        self.assertIsInstance(store, StoreRecord)
        self.assertTrue(store.editable)
        self.assertEqual(store.record.settings, {'x': 1})

        self.assertIsNone(ctx.resolver.find_by_handle(RecordKind.PROVIDER, 'missing'))
        self.assertIsNone(ctx.resolver.resolve(RecordKind.PROVIDER, ''))

    def test_config_sender_fields_map_to_record(self):
        ctx = self._context()
        sender = ctx.resolver.find_by_handle(RecordKind.SENDER_ID, 'cfg-sender').record
        self.assertEqual(sender.provider_handle, 'cfg-b')
        self.assertEqual(sender.sender_value, 'CFG')
        self.assertIsNone(sender.id)

    def test_default_falls_through_disabled_explicit_default(self):
        ctx = self._context({**CONFIG, 'defaultProviderHandle': 'cfg-a'})
        default = ctx.resolver.get_default(RecordKind.PROVIDER)
        self.assertEqual(default.handle, 'cfg-b')
        self.assertTrue(ctx.resolver.is_default_from_config(RecordKind.PROVIDER))

    def test_explicit_enabled_default_wins(self):
        ctx = self._context()
        self._add_provider('store-c', 'Charlie')
        ctx.resolver.set_default(RecordKind.PROVIDER, 'store-c')
        self.assertEqual(ctx.resolver.get_default(RecordKind.PROVIDER).handle, 'store-c')
        self.assertFalse(ctx.resolver.is_default_from_config(RecordKind.PROVIDER))

    def test_sender_default_is_scoped_to_provider(self):
        ctx = self._context()
        self._add_sender('other-sender', 'Another', 'store-c')
        ctx.resolver.set_default(RecordKind.SENDER_ID, 'other-sender')

        self.assertEqual(ctx.resolver.get_default(RecordKind.SENDER_ID).handle, 'other-sender')
        scoped = ctx.resolver.get_default(RecordKind.SENDER_ID, provider_handle='cfg-b')
        self.assertEqual(scoped.handle, 'cfg-sender')
        self.assertIsNone(ctx.resolver.get_default(RecordKind.SENDER_ID, provider_handle='nobody'))
        self.assertEqual([item.handle for item in ctx.resolver.find_senders_for_provider('store-c')], ['other-sender'])

    def test_set_default_rejections(self):
        ctx = self._context()
        self._add_provider('off', 'Disabled', enabled=False)

        with self.assertRaises(RecordNotFound):
            ctx.resolver.set_default(RecordKind.PROVIDER, 'missing')
        with self.assertRaises(RecordValidationError):
            ctx.resolver.set_default(RecordKind.PROVIDER, 'off')

        pinned = self._context({**CONFIG, 'defaultProviderHandle': 'cfg-b'})
        with self.assertRaises(ReadOnlyConfigRecord):
            pinned.resolver.set_default(RecordKind.PROVIDER, 'shared')
