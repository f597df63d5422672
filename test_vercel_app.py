import json
import unittest
from unittest.mock import patch

from werkzeug.test import EnvironBuilder

import vercel_app


class StartResponse:
    def __init__(self):
        self.status = None
        self.headers = None

    def __call__(self, status, headers, exc_info=None):
        self.status = status
        self.headers = dict(headers)
        return lambda data: None


class TestVercelHandler(unittest.TestCase):
    def test_requests_reach_flask_app(self):
        environ = EnvironBuilder(path='/api/together-chat', method='OPTIONS').get_environ()
        start_response = StartResponse()

        body = b''.join(vercel_app.handler(environ, start_response))

        self.assertTrue(start_response.status.startswith('204'))
        self.assertEqual(start_response.headers['Access-Control-Allow-Origin'], '*')
        self.assertEqual(body, b'')

    def test_app_failure_returns_json_500(self):
        environ = EnvironBuilder(path='/api/diagnostic', method='GET').get_environ()
        start_response = StartResponse()

        with patch('vercel_app.app', side_effect=RuntimeError('worker crashed')):
            body = b''.join(vercel_app.handler(environ, start_response))

        self.assertTrue(start_response.status.startswith('500'))
        self.assertEqual(start_response.headers['Content-Type'], 'application/json')
        data = json.loads(body)
        self.assertEqual(data['error'], 'Server error')
        self.assertEqual(data['message'], 'worker crashed')


if __name__ == '__main__':
    unittest.main()
