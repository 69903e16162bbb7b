"""
Tests for the Klaviyo and Judge.me integrations and the review proxy routes.
"""
import pytest
import requests
from unittest.mock import MagicMock, patch

from app.services.judgeme_service import JudgeMeService
from app.services.klaviyo_service import KlaviyoService
from app.utils.exceptions import ConfigurationError, JudgeMeError


def http_response(status_code=200, body=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body if body is not None else {}
    response.content = b'{}' if body is not None else b''
    response.text = ''
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(f'{status_code} Error')
    return response


# ==================== Klaviyo ====================

class TestKlaviyoService:

    @patch('app.services.klaviyo_service.requests.post')
    def test_subscribe(self, mock_post):
        mock_post.return_value = http_response(202)
        service = KlaviyoService('pk_test', 'ListA')

        assert service.subscribe_to_list('ada@example.com', 'Ada') is True

        subscribe_call, profile_call = mock_post.call_args_list
        assert subscribe_call.args[0].endswith('/profile-subscription-bulk-create-jobs/')
        payload = subscribe_call.kwargs['json']['data']
        assert payload['relationships']['list']['data']['id'] == 'ListA'
        assert subscribe_call.kwargs['headers']['Authorization'] == 'Klaviyo-API-Key pk_test'
        assert profile_call.args[0].endswith('/profile-import/')
        assert profile_call.kwargs['json']['data']['attributes'] == {
            'email': 'ada@example.com',
            'first_name': 'Ada'
        }

    @patch('app.services.klaviyo_service.requests.post')
    def test_no_first_name_skips_profile_update(self, mock_post):
        mock_post.return_value = http_response(202)

        assert KlaviyoService('pk_test', 'ListA').subscribe_to_list('ada@example.com') is True
        assert mock_post.call_count == 1

    @patch('app.services.klaviyo_service.requests.post')
    def test_rejected_subscription(self, mock_post):
        mock_post.return_value = http_response(400)
        assert KlaviyoService('pk_test', 'ListA').subscribe_to_list('ada@example.com', 'Ada') is False

    @patch('app.services.klaviyo_service.requests.post')
    def test_request_failure(self, mock_post):
        mock_post.side_effect = requests.exceptions.ConnectionError('down')
        assert KlaviyoService('pk_test', 'ListA').subscribe_to_list('ada@example.com') is False

    @patch('app.services.klaviyo_service.requests.post')
    def test_not_configured(self, mock_post):
        assert KlaviyoService(None, 'ListA').subscribe_to_list('ada@example.com') is None
        mock_post.assert_not_called()


# ==================== Judge.me ====================

class TestJudgeMeService:

    @patch('app.services.judgeme_service.requests.post')
    def test_submit_review(self, mock_post):
        mock_post.return_value = http_response(200, {'review': {'id': 9}})
        service = JudgeMeService('jm_token', 'test-shop.myshopify.com')

        result = service.submit_review({'id': 123, 'email': 'ada@example.com', 'rating': 5})

        assert result == {'review': {'id': 9}}
        payload = mock_post.call_args.kwargs['json']
        assert payload['rating'] == 5
        assert payload['api_token'] == 'jm_token'
        assert payload['shop_domain'] == 'test-shop.myshopify.com'

    @patch('app.services.judgeme_service.requests.post')
    def test_submit_failure(self, mock_post):
        mock_post.return_value = http_response(422)

        with pytest.raises(JudgeMeError):
            JudgeMeService('jm_token', 'test-shop.myshopify.com').submit_review({'rating': 5})

    @patch('app.services.judgeme_service.requests.get')
    def test_fetch_customer_reviews(self, mock_get):
        mock_get.return_value = http_response(200, {'reviews': []})

        result = JudgeMeService('jm_token', 'test-shop.myshopify.com').fetch_customer_reviews('ada@example.com')

        assert result == {'reviews': []}
        assert mock_get.call_args.kwargs['params']['reviewer_email'] == 'ada@example.com'

    def test_not_configured(self):
        with pytest.raises(ConfigurationError):
            JudgeMeService(None, 'test-shop.myshopify.com').fetch_customer_reviews('ada@example.com')


class TestReviewRoutes:

    @patch('app.services.judgeme_service.requests.post')
    def test_submit_review(self, mock_post, client):
        mock_post.return_value = http_response(200, {'review': {'id': 9}})

        response = client.post('/api/submit-review', json={'id': 123, 'rating': 5})

        assert response.status_code == 200
        assert response.get_json() == {'review': {'id': 9}}
        assert mock_post.call_args.kwargs['json']['api_token'] == 'test-judgeme-token'

    def test_submit_review_requires_body(self, client):
        response = client.post('/api/submit-review', json={})
        assert response.status_code == 400

    @patch('app.services.judgeme_service.requests.post')
    def test_submit_review_failure(self, mock_post, client):
        mock_post.side_effect = requests.exceptions.Timeout('slow')

        response = client.post('/api/submit-review', json={'id': 123, 'rating': 5})

        assert response.status_code == 502
        assert response.get_json()['error']['code'] == 'JUDGEME_ERROR'

    @patch('app.services.judgeme_service.requests.get')
    def test_customer_reviews(self, mock_get, client):
        mock_get.return_value = http_response(200, {'reviews': [{'id': 1}]})

        response = client.get('/api/customer-reviews?email=ada@example.com')

        assert response.status_code == 200
        assert response.get_json() == {'reviews': [{'id': 1}]}

    def test_customer_reviews_requires_email(self, client):
        response = client.get('/api/customer-reviews')
        assert response.status_code == 400
