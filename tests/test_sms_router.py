import tempfile
import unittest
from pathlib import Path

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from sms_manager.context import build_context
from sms_manager.db import Base
from sms_manager.models import SmsLog, SmsProvider, SmsSenderId, SmsSettings
from sms_manager.routers import sms
from sms_manager.services.config_file import build_document


CONFIG = {
    'providers': {
        'cfg-log': {
            'name': 'Config log',
            'type': 'log-only',
            'settings': {'allowedCountries': ['KW'], 'apiKey': 'super-secret'},
        },
    },
    'senderIds': {
        'cfg-sender': {'name': 'Config sender', 'provider': 'cfg-log', 'senderId': 'CFG'},
    },
    'logsRetention': 14,
}


class SmsRouterTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_sms_router.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)
        cls.ctx = build_context(cls._session_factory, build_document(CONFIG, 'production'))

        app = FastAPI()
        app.include_router(sms.router)
        app.dependency_overrides[sms._context] = lambda: cls.ctx
        cls.client = TestClient(app)

    @classmethod
    def tearDownClass(cls):
        cls.client.close()
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        db = self._session_factory()
        try:
            db.query(SmsLog).delete()
            db.query(SmsSenderId).delete()
            db.query(SmsProvider).delete()
            db.query(SmsSettings).delete()
            db.commit()
        finally:
            db.close()

    def test_send_details_returns_dispatch_outcome(self):
        res = self.client.post('/api/sms/send-details', json={'to': '94400999', 'message': 'hello'})
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['provider_name'], 'Config log')
        self.assertEqual(body['sender_id_value'], 'CFG')
        self.assertIsNotNone(body['log_id'])

    def test_send_reports_failure_as_false(self):
        res = self.client.post('/api/sms/send', json={'to': '12', 'message': 'hello'})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {'success': False})

        res = self.client.post('/api/sms/send-by-handle', json={'to': '94400999', 'message': 'hi', 'sender_handle': 'cfg-sender'})
        self.assertEqual(res.json(), {'success': True})

    def test_provider_listing_masks_secrets_and_tags_origin(self):
        res = self.client.get('/api/sms/providers')
        self.assertEqual(res.status_code, 200)
        [row] = res.json()['rows']
        self.assertEqual(row['origin'], 'config')
        self.assertFalse(row['editable'])
        self.assertTrue(row['is_default'])
        self.assertEqual(row['settings']['apiKey'], '********')

        types = {row['handle'] for row in self.client.get('/api/sms/provider-types').json()['rows']}
        self.assertEqual(types, {'mpp-sms', 'log-only'})

    def test_provider_crud_maps_errors_to_status_codes(self):
        res = self.client.post('/api/sms/providers', json={'handle': 'Bad!', 'name': '', 'type': 'log-only'})
        self.assertEqual(res.status_code, 422)
        detail = res.json()['detail']
        self.assertEqual(detail['code'], 'validation_failed')
        self.assertEqual(set(detail['errors']), {'handle', 'name'})

        res = self.client.post('/api/sms/providers', json={'handle': 'store-log', 'name': 'Store log', 'type': 'log-only'})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()['origin'], 'store')

        res = self.client.delete('/api/sms/providers/cfg-log')
        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.json()['detail']['code'], 'read_only_config_record')

        self.assertEqual(self.client.delete('/api/sms/providers/ghost').status_code, 404)
        self.assertEqual(self.client.delete('/api/sms/providers/store-log').json(), {'ok': True})

    def test_sender_ids_can_be_filtered_by_provider(self):
        self.client.post('/api/sms/providers', json={'handle': 'store-log', 'name': 'Store log', 'type': 'log-only'})
        res = self.client.post(
            '/api/sms/sender-ids',
            json={'handle': 'store-sender', 'name': 'Store sender', 'provider_handle': 'store-log', 'sender_value': 'ST'},
        )
        self.assertEqual(res.status_code, 200)

        rows = self.client.get('/api/sms/sender-ids', params={'provider': 'store-log'}).json()['rows']
        self.assertEqual([row['handle'] for row in rows], ['store-sender'])

        res = self.client.delete('/api/sms/providers/store-log')
        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.json()['detail']['code'], 'in_use_cannot_delete')

    def test_settings_endpoint_respects_config_overrides(self):
        body = self.client.get('/api/sms/settings').json()
        self.assertEqual(body['settings']['logs_retention'], 14)
        self.assertEqual(body['overridden'], ['logs_retention'])

        res = self.client.patch('/api/sms/settings', json={'logs_retention': 3})
        self.assertEqual(res.status_code, 409)

        res = self.client.patch('/api/sms/settings', json={'logs_limit': 250})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()['settings']['logs_limit'], 250)

        self.assertEqual(self.client.patch('/api/sms/settings', json={}).status_code, 400)

    def test_default_can_be_changed_unless_pinned(self):
        self.client.post('/api/sms/providers', json={'handle': 'store-log', 'name': 'Store log', 'type': 'log-only'})
        res = self.client.put('/api/sms/defaults/provider', json={'handle': 'store-log'})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {'handle': 'store-log'})

        res = self.client.put('/api/sms/defaults/provider', json={'handle': 'ghost'})
        self.assertEqual(res.status_code, 404)

    def test_maintenance_clears_logs(self):
        self.client.post('/api/sms/send', json={'to': '94400999', 'message': 'hello'})
        res = self.client.post('/api/sms/maintenance/clear-logs')
        self.assertEqual(res.json(), {'deleted': 1})


def test_application_exposes_health_and_sms_routes():
    from sms_manager.main import app

    paths = {route.path for route in app.routes}
    assert {'/health', '/api/sms/send', '/api/sms/providers/{handle}'} <= paths
    client = TestClient(app)
    try:
        assert client.get('/health').json() == {'status': 'ok'}
    finally:
        client.close()
