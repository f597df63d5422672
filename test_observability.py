import logging
import unittest
from unittest.mock import patch

from observability import Observability, RequestRecord, redact


class TestRequestRecord(unittest.TestCase):
    def test_phases_recorded_in_order(self):
        record = RequestRecord('together-chat')
        record.mark('validate')
        record.mark('upstream')

        debug = record.to_debug()
        self.assertEqual(list(debug['phases']), ['validate', 'upstream'])
        self.assertEqual(debug['request_id'], record.request_id)
        self.assertGreaterEqual(debug['total_ms'], 0)

    def test_request_ids_unique(self):
        self.assertNotEqual(RequestRecord('a').request_id, RequestRecord('a').request_id)


class TestRedact(unittest.TestCase):
    def test_only_prefix_kept(self):
        self.assertEqual(redact('0123456789abcdef'), '0123...')
        self.assertEqual(redact(None), 'null')


class TestObservability(unittest.TestCase):
    def setUp(self):
        self.logger = logging.getLogger('test-proxy')
        self.obs = Observability(logger=self.logger)

    def test_structured_fields_logged(self):
        record = RequestRecord('together-chat')
        with self.assertLogs('test-proxy', level='INFO') as logs:
            self.obs.log(record, logging.INFO, 'Request validated', messages=2)
        self.assertIn(record.request_id[:8], logs.output[0])
        self.assertIn('messages=2', logs.output[0])

    def test_fail_sets_error_descriptor(self):
        record = RequestRecord('prokerala-token')
        with self.assertLogs('test-proxy', level='ERROR'):
            self.obs.fail(record, ValueError('bad'))
        self.assertEqual(record.error, {'name': 'ValueError', 'message': 'bad'})

    def test_cloud_logging_failure_degrades(self):
        with patch('observability.cloud_logging.Client', side_effect=RuntimeError('no credentials')):
            with self.assertLogs('test-proxy', level='WARNING'):
                obs = Observability(logger=self.logger, cloud_logging_enabled=True)
        self.assertIsNone(obs.cloud_logger)

    def test_finish_writes_cloud_record(self):
        with patch('observability.cloud_logging.Client') as client:
            obs = Observability(logger=self.logger, cloud_logging_enabled=True)
            record = obs.start_request('together-chat')
            obs.finish(record, 200)

        cloud_logger = client.return_value.logger.return_value
        entry = cloud_logger.log_struct.call_args.args[0]
        self.assertEqual(entry['request_id'], record.request_id)
        self.assertEqual(entry['status'], 200)


if __name__ == '__main__':
    unittest.main()
