"""Unit tests for analytics module."""

from unittest.mock import Mock, patch

import requests

from sidequest.analytics import (
    send_feedback_submitted,
    send_metric,
    send_quest_completed,
    send_quest_joined,
)


class TestSendMetric:
    """Test suite for send_metric function."""

    @patch('sidequest.analytics.requests.post')
    @patch('sidequest.analytics.time.time')
    def test_successful_metric_send(self, mock_time, mock_post):
        """Test successful metric submission to Datadog."""
        # Arrange
        mock_time.return_value = 1234567890
        mock_response = Mock()
        mock_response.raise_for_status = Mock()
        mock_post.return_value = mock_response

        # Act
        result = send_metric("quest_joined", {"status": "forming", "category": "coding"}, "test-api-key")

        # Assert
        assert result is True
        mock_post.assert_called_once()

        payload = mock_post.call_args.kwargs['json']
        assert payload['series'][0]['metric'] == 'sidequest.quest_joined'
        assert payload['series'][0]['type'] == 'count'
        assert payload['series'][0]['points'] == [[1234567890, 1]]
        assert payload['series'][0]['tags'] == ['category:coding', 'status:forming']

        headers = mock_post.call_args.kwargs['headers']
        assert headers['DD-API-KEY'] == 'test-api-key'
        assert headers['Content-Type'] == 'application/json'
        assert mock_post.call_args.kwargs['timeout'] == 5

    @patch('sidequest.analytics.requests.post')
    def test_no_api_key_skips_request(self, mock_post):
        """Without a key nothing is sent."""
        assert send_metric("quest_joined", {}, None) is False
        assert send_metric("quest_joined", {}, "") is False
        mock_post.assert_not_called()

    @patch('sidequest.analytics.requests.post')
    def test_request_exception_returns_false(self, mock_post):
        """Test that request exceptions are caught and return False."""
        mock_post.side_effect = requests.exceptions.RequestException("Network error")

        assert send_metric("quest_joined", {}, "test-api-key") is False

    @patch('sidequest.analytics.requests.post')
    def test_http_error_returns_false(self, mock_post):
        """Test that HTTP errors are caught and return False."""
        mock_response = Mock()
        mock_response.raise_for_status.side_effect = requests.exceptions.HTTPError("403 Forbidden")
        mock_post.return_value = mock_response

        assert send_metric("quest_joined", {}, "test-api-key") is False

    @patch('sidequest.analytics.requests.post')
    def test_timeout_returns_false(self, mock_post):
        mock_post.side_effect = requests.exceptions.Timeout("Request timed out")

        assert send_metric("quest_completed", {}, "test-api-key") is False


class TestEventMetrics:
    """Test the per-event helpers."""

    @patch('sidequest.analytics.requests.post')
    def test_quest_joined_tags(self, mock_post):
        send_quest_joined("", "active", "test-api-key")

        payload = mock_post.call_args.kwargs['json']
        assert payload['series'][0]['metric'] == 'sidequest.quest_joined'
        assert payload['series'][0]['tags'] == ['category:none', 'status:active']

    @patch('sidequest.analytics.requests.post')
    def test_quest_completed_tags(self, mock_post):
        send_quest_completed("games", 4, "test-api-key")

        payload = mock_post.call_args.kwargs['json']
        assert payload['series'][0]['tags'] == ['category:games', 'team_size:4']

    @patch('sidequest.analytics.requests.post')
    def test_feedback_submitted_tags(self, mock_post):
        send_feedback_submitted(5, "test-api-key")

        payload = mock_post.call_args.kwargs['json']
        assert payload['series'][0]['metric'] == 'sidequest.feedback_submitted'
        assert payload['series'][0]['tags'] == ['enjoyment:5']
