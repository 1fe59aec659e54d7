"""Tests for Crisis Engine HTTP handler."""
import asyncio
import json
import pytest
from unittest.mock import patch

from safeharbor.shared.models import Location
from safeharbor.shared.utils import configure_pii_salt
from safeharbor.services.notification_service import ContactGateway, DeliveryReceipt


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@pytest.fixture
def client():
    from safeharbor.services.crisis_engine.http_handler import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client


def message(text, message_id="msg_1"):
    return {
        'text': text,
        'user_id': 'user_http',
        'session_id': 'sess_001',
        'message_id': message_id,
    }


CRISIS_TEXT = "I want to kill myself and have a plan to do it tonight"


class TestHealthEndpoints:
    def test_health_returns_200(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['status'] == 'healthy'
        assert data['service'] == 'crisis-engine'

    def test_ready_reports_catalog_version(self, client):
        response = client.get('/ready')
        assert response.status_code == 200
        assert json.loads(response.data)['protocol_catalog_version']

    def test_ready_503_when_database_unhealthy(self, client):
        from safeharbor.services.crisis_engine import http_handler
        status = {
            'ready': False,
            'protocol_catalog_version': '1',
            'database': {'status': 'error', 'healthy': False},
        }
        with patch.object(http_handler.engine, 'readiness', return_value=status):
            response = client.get('/ready')

        assert response.status_code == 503
        assert json.loads(response.data)['status'] == 'not_ready'


class TestAnalyzeEndpoint:
    def test_analyze_critical(self, client):
        response = client.post('/crisis/analyze', json=message(CRISIS_TEXT))

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['risk_level'] == 'critical'
        assert data['time_to_intervention_seconds'] == 0

    def test_analyze_missing_fields(self, client):
        response = client.post('/crisis/analyze', json={'text': 'hello'})

        assert response.status_code == 400
        assert 'user_id' in json.loads(response.data)['error']

    def test_analyze_without_body(self, client):
        response = client.post('/crisis/analyze')

        assert response.status_code == 400


class TestMessagesEndpoint:
    def test_critical_message_escalates(self, client):
        response = client.post('/crisis/messages', json=message(CRISIS_TEXT, 'msg_crit'))

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['assessment']['risk_level'] == 'critical'
        escalation = data['escalation']
        assert escalation['protocol_name'] == 'suicide_risk'
        assert escalation['contacted_services'][0] == 'crisis_hotline'
        assert escalation['alternatives']


class TestEscalateEndpoint:
    def test_unknown_assessment_returns_404(self, client):
        response = client.post('/crisis/escalate', json={'assessment_id': 'missing'})

        assert response.status_code == 404

    def test_escalate_stored_assessment(self, client):
        processed = json.loads(
            client.post('/crisis/messages', json=message("I feel hopeless", 'msg_esc')).data
        )

        response = client.post(
            '/crisis/escalate', json={'assessment_id': processed['assessment']['id']},
        )

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['state'].startswith('escalated-')
        assert data['alternatives']

    def test_missing_assessment_id(self, client):
        response = client.post('/crisis/escalate', json={})

        assert response.status_code == 400


class TestSafetyPlanEndpoint:
    def test_create_safety_plan(self, client):
        processed = json.loads(
            client.post('/crisis/messages', json=message(CRISIS_TEXT, 'msg_plan')).data
        )

        response = client.post(
            '/crisis/safety-plan',
            json={'user_id': 'user_http', 'assessment_id': processed['assessment']['id']},
        )

        assert response.status_code == 201
        data = json.loads(response.data)
        assert data['user_id'] == 'user_http'
        assert len(data['coping_strategies']) >= 8
        assert data['follow_up_plan']['review_date']

    def test_safety_plan_unknown_assessment(self, client):
        response = client.post(
            '/crisis/safety-plan', json={'user_id': 'user_http', 'assessment_id': 'missing'},
        )

        assert response.status_code == 404


class TestContextValidation:
    @pytest.mark.parametrize('path', ['/crisis/analyze', '/crisis/messages'])
    def test_context_must_be_an_object(self, client, path):
        body = dict(message(CRISIS_TEXT, 'msg_ctx'), context='bad')

        response = client.post(path, json=body)

        assert response.status_code == 400
        assert 'Invalid context' in json.loads(response.data)['error']

    @pytest.mark.parametrize('path', ['/crisis/analyze', '/crisis/messages'])
    def test_non_numeric_field_is_rejected(self, client, path):
        body = dict(message(CRISIS_TEXT, 'msg_ctx'), context={'recent_crisis_flags': 'x'})

        response = client.post(path, json=body)

        assert response.status_code == 400
        assert 'Invalid context' in json.loads(response.data)['error']

    def test_valid_context_is_accepted(self, client):
        body = dict(
            message("I feel a bit low today", 'msg_ctx_ok'),
            context={'recent_crisis_flags': 2, 'current_mood': 3.5, 'recent_message_count': 4},
        )

        response = client.post('/crisis/analyze', json=body)

        assert response.status_code == 200


class SlowDispatchGateway(ContactGateway):
    """Confirms dispatch only after the confirmation window has passed."""

    def __init__(self, delay):
        self.delay = delay
        self.dispatched = []

    async def notify_contact(self, user_id, contact, message, urgency):
        return DeliveryReceipt(reference_number=f"sms_{contact.id}")

    async def dispatch_emergency(self, user_id, unit, location, emergency_type):
        await asyncio.sleep(self.delay)
        self.dispatched.append(unit.id)
        return DeliveryReceipt(reference_number=f"dispatch_{unit.id}")

    async def refer_to_service(self, user_id, name, phone, location, reason):
        return DeliveryReceipt(reference_number=f"ref_{name}")


class TestLateChannelAttempts:
    def test_unconfirmed_dispatch_completes_after_response(self, client):
        from safeharbor.services.crisis_engine import http_handler
        orchestrator = http_handler.engine.orchestrator
        gateway = SlowDispatchGateway(delay=0.2)
        original_gateway = orchestrator.channels.gateway
        original_window = orchestrator.confirmation_seconds
        orchestrator.channels.gateway = gateway
        orchestrator.confirmation_seconds = 0.05
        orchestrator.directory.set_location(
            'user_http', Location(latitude=39.7, longitude=-104.9, country_code='US'),
        )
        try:
            response = client.post('/crisis/messages', json=message(CRISIS_TEXT, 'msg_late'))

            assert response.status_code == 200
            outcomes = json.loads(response.data)['escalation']['channel_outcomes']
            dispatch = next(o for o in outcomes if o['channel'] == 'emergency_dispatch')
            assert dispatch['detail'] == 'attempted_no_confirmation'

            # The attempt is still running on the engine loop after the response
            assert http_handler.runtime.run(http_handler.engine.drain()) == {'drained': 1}
            assert gateway.dispatched == ['us_911']
        finally:
            orchestrator.channels.gateway = original_gateway
            orchestrator.confirmation_seconds = original_window
            orchestrator.directory._locations.pop('user_http', None)
