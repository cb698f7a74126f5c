import unittest
from unittest import mock

import requests

from processing.webhook import notify_review_needed


class WebhookTestCase(unittest.TestCase):

    def test_posts_record(self):
        with mock.patch('processing.webhook.requests.post') as post:
            self.assertTrue(notify_review_needed('http://hooks.local/review', {'id': 1}, timeout=3))
        post.assert_called_once_with('http://hooks.local/review', json={'id': 1}, timeout=3)

    def test_no_url_configured(self):
        with mock.patch('processing.webhook.requests.post') as post:
            self.assertFalse(notify_review_needed(None, {'id': 1}))
        post.assert_not_called()

    def test_failure_is_logged_not_raised(self):
        with mock.patch('processing.webhook.requests.post', side_effect=requests.ConnectionError("refused")):
            with self.assertLogs('processing.webhook', level='ERROR'):
                self.assertFalse(notify_review_needed('http://hooks.local/review', {'id': 1}))


if __name__ == '__main__':
    unittest.main()
