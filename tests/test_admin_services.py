import tempfile
import unittest
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from sms_manager.context import build_context
from sms_manager.core.errors import InUseCannotDelete, ReadOnlyConfigRecord, RecordNotFound, RecordValidationError
from sms_manager.db import Base
from sms_manager.models import SmsProvider, SmsSenderId, SmsSettings
from sms_manager.schemas import ProviderSaveRequest, SenderIdSaveRequest
from sms_manager.services.config_file import build_document
from sms_manager.services.integrations_service import IntegrationsService
from sms_manager.services.record_resolver import RecordKind


CONFIG = {
    'providers': {
        'cfg-main': {'name': 'Config main', 'type': 'log-only'},
    },
    'senderIds': {
        'cfg-sender': {'name': 'Config sender', 'provider': 'cfg-main', 'senderId': 'CFG'},
    },
}


class CampaignIntegration:
    """References the `store-mpp` provider and the `promo` sender ID."""

    def provider_usages(self, provider_handle):
        if provider_handle == 'store-mpp':
            return [{'label': 'Spring campaign', 'edit_url': '/campaigns/1'}]
        return []

    def sender_id_usages(self, sender_handle):
        if sender_handle == 'promo':
            return [{'label': 'Spring campaign', 'edit_url': '/campaigns/1'}]
        return []


def _provider(**overrides):
    values = {
        'handle': 'store-mpp',
        'name': 'Store MPP',
        'type': 'mpp-sms',
        'settings': {'apiKey': 'k', 'allowedCountries': ['KW']},
    }
    values.update(overrides)
    return ProviderSaveRequest(**values)


def _sender(**overrides):
    values = {'handle': 'promo', 'name': 'Promo', 'provider_handle': 'store-mpp', 'sender_value': 'PROMO'}
    values.update(overrides)
    return SenderIdSaveRequest(**values)


class AdminServicesTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_admin_services.db'
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

    def _context(self, integrations=None):
        return build_context(
            self._session_factory,
            build_document(CONFIG, 'production'),
            integrations=integrations,
        )

    def _campaign_integrations(self):
        integrations = IntegrationsService()
        integrations.register('campaigns', 'Campaigns', CampaignIntegration)
        return integrations

    def test_save_provider_creates_and_updates(self):
        ctx = self._context()
        created = ctx.providers.save_provider(_provider())
        self.assertIsNotNone(created.id)
        self.assertEqual(created.settings, {'apiKey': 'k', 'allowedCountries': ['KW']})

        updated = ctx.providers.save_provider(_provider(name='Renamed', enabled=False), provider_id=created.id)
        self.assertEqual(updated.id, created.id)
        self.assertEqual(updated.name, 'Renamed')
        self.assertFalse(updated.enabled)
        self.assertEqual(ctx.resolver.find_by_handle(RecordKind.PROVIDER, 'store-mpp').record.name, 'Renamed')

    def test_save_provider_reports_every_field_error(self):
        ctx = self._context()
        with self.assertRaises(RecordValidationError) as caught:
            ctx.providers.save_provider(ProviderSaveRequest(handle='Bad Handle!', name='', type='nope'))
        self.assertEqual(set(caught.exception.errors), {'handle', 'name', 'type'})
        self.assertEqual(caught.exception.errors['type'], 'Unknown provider type: nope')

        with self.assertRaises(RecordValidationError) as caught:
            ctx.providers.save_provider(_provider(settings={'allowedCountries': ['KW', 'XX']}))
        self.assertEqual(caught.exception.errors, {
            'settings.apiKey': 'API Key is required.',
            'settings.allowedCountries': 'Unknown country codes: XX',
        })

    def test_save_provider_rejects_duplicate_handle(self):
        ctx = self._context()
        ctx.providers.save_provider(_provider())
        with self.assertRaises(RecordValidationError) as caught:
            ctx.providers.save_provider(_provider(name='Again'))
        self.assertEqual(caught.exception.errors, {'handle': 'This handle is already in use.'})

    def test_config_records_are_read_only_and_document_is_untouched(self):
        ctx = self._context()
        before = ctx.document.model_dump()

        with self.assertRaises(ReadOnlyConfigRecord):
            ctx.providers.save_provider(_provider(handle='cfg-main', name='Hijacked'))
        with self.assertRaises(ReadOnlyConfigRecord):
            ctx.providers.delete_provider('cfg-main')
        with self.assertRaises(ReadOnlyConfigRecord):
            ctx.sender_ids.save_sender_id(_sender(handle='cfg-sender', provider_handle='cfg-main', sender_value='NEW'))
        with self.assertRaises(ReadOnlyConfigRecord):
            ctx.sender_ids.delete_sender_id('cfg-sender')

        self.assertEqual(ctx.document.model_dump(), before)
        provider = ctx.resolver.find_by_handle(RecordKind.PROVIDER, 'cfg-main')
        self.assertEqual(provider.record.name, 'Config main')
        sender = ctx.resolver.find_by_handle(RecordKind.SENDER_ID, 'cfg-sender')
        self.assertEqual(sender.record.sender_value, 'CFG')

    def test_missing_records_raise_not_found(self):
        ctx = self._context()
        with self.assertRaises(RecordNotFound):
            ctx.providers.save_provider(_provider(), provider_id=999)
        with self.assertRaises(RecordNotFound):
            ctx.providers.delete_provider('ghost')
        with self.assertRaises(RecordNotFound):
            ctx.sender_ids.delete_sender_id(12345)

    def test_sender_requires_existing_provider(self):
        ctx = self._context()
        with self.assertRaises(RecordValidationError) as caught:
            ctx.sender_ids.save_sender_id(_sender(provider_handle='ghost', sender_value=''))
        self.assertEqual(set(caught.exception.errors), {'provider_handle', 'sender_value'})

        saved = ctx.sender_ids.save_sender_id(_sender(provider_handle='cfg-main'))
        self.assertEqual(saved.provider_handle, 'cfg-main')

    def test_provider_handle_change_blocked_while_senders_point_at_it(self):
        ctx = self._context()
        provider = ctx.providers.save_provider(_provider())
        ctx.sender_ids.save_sender_id(_sender())

        with self.assertRaises(RecordValidationError) as caught:
            ctx.providers.save_provider(_provider(handle='store-mpp-2'), provider_id=provider.id)
        self.assertEqual(set(caught.exception.errors), {'handle'})
        self.assertIn('Sender ID: Promo', caught.exception.errors['handle'])

        self.assertIsNotNone(ctx.resolver.find_by_handle(RecordKind.PROVIDER, 'store-mpp'))
        self.assertEqual([s.handle for s in ctx.resolver.find_senders_for_provider('store-mpp')], ['promo'])

    def test_provider_handle_change_blocked_while_default(self):
        ctx = self._context()
        spare = ctx.providers.save_provider(_provider(handle='spare', name='Spare'))
        ctx.resolver.set_default(RecordKind.PROVIDER, 'spare')

        with self.assertRaises(RecordValidationError) as caught:
            ctx.providers.save_provider(_provider(handle='spare-2', name='Spare'), provider_id=spare.id)
        self.assertIn('Default provider', caught.exception.errors['handle'])
        self.assertEqual(ctx.resolver.get_default_handle(RecordKind.PROVIDER), 'spare')

        ctx.resolver.set_default(RecordKind.PROVIDER, None)
        renamed = ctx.providers.save_provider(_provider(handle='spare-2', name='Spare'), provider_id=spare.id)
        self.assertEqual(renamed.handle, 'spare-2')
        self.assertIsNone(ctx.resolver.find_by_handle(RecordKind.PROVIDER, 'spare'))

    def test_sender_handle_change_blocked_while_default_or_used(self):
        ctx = self._context(self._campaign_integrations())
        ctx.providers.save_provider(_provider())
        promo = ctx.sender_ids.save_sender_id(_sender())
        plain = ctx.sender_ids.save_sender_id(_sender(handle='plain', name='Plain', sender_value='PLAIN'))
        ctx.resolver.set_default(RecordKind.SENDER_ID, 'plain')

        with self.assertRaises(RecordValidationError) as caught:
            ctx.sender_ids.save_sender_id(_sender(handle='promo-2'), sender_id=promo.id)
        self.assertIn('Spring campaign', caught.exception.errors['handle'])

        with self.assertRaises(RecordValidationError) as caught:
            ctx.sender_ids.save_sender_id(
                _sender(handle='plain-2', name='Plain', sender_value='PLAIN'), sender_id=plain.id,
            )
        self.assertIn('Default sender ID', caught.exception.errors['handle'])

        # Changing anything but the handle is still allowed.
        updated = ctx.sender_ids.save_sender_id(
            _sender(handle='plain', name='Plain renamed', sender_value='PLAIN'), sender_id=plain.id,
        )
        self.assertEqual(updated.name, 'Plain renamed')

    def test_provider_delete_blocked_by_senders_integrations_and_default(self):
        ctx = self._context(self._campaign_integrations())
        ctx.providers.save_provider(_provider())
        ctx.sender_ids.save_sender_id(_sender())

        with self.assertRaises(InUseCannotDelete) as caught:
            ctx.providers.delete_provider('store-mpp')
        labels = [usage['label'] for usage in caught.exception.usages]
        self.assertEqual(labels, ['Spring campaign', 'Sender ID: Promo'])
        self.assertEqual(caught.exception.as_dict()['code'], 'in_use_cannot_delete')

        ctx.providers.save_provider(_provider(handle='spare', name='Spare'))
        ctx.resolver.set_default(RecordKind.PROVIDER, 'spare')
        with self.assertRaises(InUseCannotDelete) as caught:
            ctx.providers.delete_provider('spare')
        self.assertEqual(caught.exception.usages[0]['label'], 'Default provider')

        ctx.resolver.set_default(RecordKind.PROVIDER, None)
        ctx.providers.delete_provider('spare')
        self.assertIsNone(ctx.resolver.find_by_handle(RecordKind.PROVIDER, 'spare'))

    def test_sender_delete_blocked_by_integration_then_allowed(self):
        ctx = self._context(self._campaign_integrations())
        ctx.sender_ids.save_sender_id(_sender(provider_handle='cfg-main'))
        ctx.sender_ids.save_sender_id(_sender(handle='plain', name='Plain', provider_handle='cfg-main'))

        with self.assertRaises(InUseCannotDelete):
            ctx.sender_ids.delete_sender_id('promo')
        ctx.sender_ids.delete_sender_id('plain')
        self.assertIsNone(ctx.resolver.find_by_handle(RecordKind.SENDER_ID, 'plain'))

    def test_connection_test_uses_provider_capability(self):
        ctx = self._context()
        self.assertTrue(ctx.providers.test_connection('cfg-main'))
        with self.assertRaises(RecordNotFound):
            ctx.providers.test_connection('ghost')
