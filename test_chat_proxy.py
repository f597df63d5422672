import unittest

import requests

from chat_proxy import build_payload, check_size, classify_upstream_failure, estimate_tokens, is_health_path
from config import ChatLimits, ProxyConfig
from errors import RequestTooLarge, UpstreamError, UpstreamTimeout
from test_app import make_response


class TestSizing(unittest.TestCase):
    limits = ChatLimits()

    def test_estimate_counts_characters(self):
        messages = [{'content': 'abcd'}, {'content': 'efg'}, {'role': 'assistant'}]
        self.assertEqual(estimate_tokens(messages), 7)

    def test_structured_content_counted_by_json_length(self):
        parts = [{'type': 'text', 'text': 'hi'}]
        self.assertEqual(estimate_tokens([{'content': parts}]), len('[{"type": "text", "text": "hi"}]'))

    def test_threshold_is_exclusive(self):
        body = {'messages': [{'content': 'x' * 10000}]}
        self.assertEqual(check_size(body, self.limits), 10000)
        body['messages'][0]['content'] += 'x'
        with self.assertRaises(RequestTooLarge):
            check_size(body, self.limits)

    def test_requested_output_threshold(self):
        with self.assertRaises(RequestTooLarge):
            check_size({'messages': [{'content': 'hi'}], 'max_tokens': 1001}, self.limits)


class TestBuildPayload(unittest.TestCase):
    limits = ChatLimits()

    def test_output_length_always_capped(self):
        self.assertEqual(build_payload({'max_tokens': 2000}, self.limits)['max_tokens'], 800)

    def test_defaults(self):
        payload = build_payload({'model': 'm'}, self.limits)
        self.assertEqual(payload['max_tokens'], 500)
        self.assertEqual(payload['temperature'], 0.3)

    def test_caller_body_not_mutated(self):
        body = {'model': 'm'}
        build_payload(body, self.limits)
        self.assertEqual(body, {'model': 'm'})


class TestClassifyUpstreamFailure(unittest.TestCase):
    def test_timeout_by_message(self):
        error = requests.ConnectionError('connect timeout to upstream')
        self.assertIsInstance(classify_upstream_failure(error, ProxyConfig()), UpstreamTimeout)

    def test_string_error_surfaced(self):
        response = make_response(503, {'error': 'overloaded'})
        failure = classify_upstream_failure(requests.HTTPError('503', response=response), ProxyConfig())
        self.assertEqual(failure.status, 503)
        self.assertEqual(failure.to_dict()['message'], 'overloaded')

    def test_http_timeout_reason_is_not_a_timeout(self):
        response = make_response(504, {'error': {'message': 'model overloaded'}}, reason='Gateway Timeout')
        error = requests.HTTPError('504 Server Error: Gateway Timeout for url: x', response=response)
        failure = classify_upstream_failure(error, ProxyConfig())
        self.assertNotIsInstance(failure, UpstreamTimeout)
        self.assertEqual(failure.status, 504)
        self.assertEqual(failure.message, 'model overloaded')

    def test_code_read_from_wrapped_os_error(self):
        class PoolFailure(Exception):
            def __init__(self, reason):
                super().__init__(f"Max retries exceeded ({reason})")
                self.reason = reason

        refused = ConnectionRefusedError(111, 'Connection refused')
        failure = classify_upstream_failure(requests.ConnectionError(PoolFailure(refused)), ProxyConfig())
        self.assertEqual(failure.to_dict()['code'], 111)

    def test_code_read_from_exception_context(self):
        try:
            try:
                raise ConnectionResetError(104, 'Connection reset by peer')
            except ConnectionResetError:
                raise requests.ConnectionError('connection aborted')
        except requests.ConnectionError as error:
            failure = classify_upstream_failure(error, ProxyConfig())
        self.assertEqual(failure.to_dict()['code'], 104)

    def test_stack_hidden_in_production(self):
        failure = classify_upstream_failure(
            requests.ConnectionError('refused'), ProxyConfig(environment='production')
        )
        self.assertIsInstance(failure, UpstreamError)
        self.assertNotIn('stack', failure.to_dict())


class TestHealthPath(unittest.TestCase):
    def test_markers(self):
        self.assertTrue(is_health_path('/api/together-chat/health'))
        self.assertTrue(is_health_path('/api/together-chat/ping'))
        self.assertFalse(is_health_path('/api/together-chat'))


if __name__ == '__main__':
    unittest.main()
