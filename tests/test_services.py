import unittest

from portr.models import RiskLevel, UNKNOWN_SERVICE
from portr.services import all_services, classify, lookup, requires_confirmation, short_name


class TestClassify(unittest.TestCase):
    def test_known_database_port_is_critical(self):
        svc = classify(5432)
        self.assertEqual(svc.label, "PostgreSQL")
        self.assertEqual(svc.risk, RiskLevel.CRITICAL)
        self.assertTrue(svc.is_critical)

    def test_high_risk_counts_as_critical(self):
        self.assertTrue(classify(6379).is_critical)

    def test_dev_server_is_not_critical(self):
        svc = classify(3000, "node")
        self.assertEqual(svc.label, "Dev Server")
        self.assertFalse(svc.is_critical)

    def test_shared_port_uses_process_name(self):
        self.assertEqual(classify(8888, "squid").label, "Proxy")
        self.assertEqual(classify(8888, "jupyter-lab").label, "Jupyter")
        # without a name the first entry wins
        self.assertEqual(classify(8888).label, "Jupyter")

    def test_unknown_port_without_name(self):
        self.assertEqual(classify(45678), UNKNOWN_SERVICE)
        self.assertIsNone(classify(45678).label)
        self.assertFalse(classify(45678).is_critical)

    def test_unknown_port_falls_back_to_specific_process_name(self):
        svc = classify(45678, "redis-server")
        self.assertEqual(svc.label, "Redis")
        self.assertTrue(svc.is_critical)

    def test_generic_process_names_do_not_classify(self):
        self.assertEqual(classify(45678, "python"), UNKNOWN_SERVICE)
        self.assertEqual(classify(45678, "node"), UNKNOWN_SERVICE)

    def test_classification_is_deterministic(self):
        for port in (22, 53, 80, 8888, 45678):
            self.assertEqual(classify(port, "nginx"), classify(port, "nginx"))


class TestHelpers(unittest.TestCase):
    def test_requires_confirmation(self):
        self.assertTrue(requires_confirmation(22))
        self.assertTrue(requires_confirmation(3306))
        self.assertFalse(requires_confirmation(3000))
        self.assertFalse(requires_confirmation(45678))

    def test_short_name(self):
        self.assertEqual(short_name(6379), "Redis")
        self.assertIsNone(short_name(1))

    def test_lookup_and_table(self):
        self.assertEqual(lookup(11434).name, "Ollama")
        self.assertIsNone(lookup(1))
        self.assertTrue(any(s.port == 2375 for s in all_services()))


if __name__ == '__main__':
    unittest.main()
