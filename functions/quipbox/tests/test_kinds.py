import unittest

from quipbox.kinds import ResponseKind, parse_response_kind


class ParseResponseKindTests(unittest.TestCase):
    def test_missing_value_is_default(self):
        stored = parse_response_kind(None)
        self.assertIs(stored.kind, ResponseKind.DEFAULT)
        self.assertFalse(stored.is_unknown)

    def test_known_values(self):
        for kind in ResponseKind:
            self.assertIs(parse_response_kind(kind.value).kind, kind)

    def test_unknown_value_keeps_original(self):
        stored = parse_response_kind("Default")
        self.assertTrue(stored.is_unknown)
        self.assertEqual(stored.raw, "Default")


if __name__ == "__main__":
    unittest.main()
