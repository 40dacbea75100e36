import unittest

from storefront.services.sanitize import escape_text, is_valid_email, normalize_phone, strip_tags


class SanitizeTests(unittest.TestCase):
    def test_escape_text_escapes_and_truncates(self):
        self.assertEqual(escape_text("  <b>Tom & Jerry</b> "), "&lt;b&gt;Tom &amp; Jerry&lt;/b&gt;")
        self.assertEqual(escape_text("abcdef", 3), "abc")
        self.assertEqual(escape_text(None), "")

    def test_strip_tags(self):
        self.assertEqual(strip_tags("<script>alert(1)</script>call me"), "alert(1)call me")
        self.assertEqual(strip_tags("x" * 600, 500), "x" * 500)

    def test_email_format(self):
        self.assertTrue(is_valid_email("buyer@example.com"))
        self.assertFalse(is_valid_email("buyer@example"))
        self.assertFalse(is_valid_email("buyer example@x.io"))
        self.assertFalse(is_valid_email(None))

    def test_phone_digits(self):
        self.assertEqual(normalize_phone("+7 (999) 123-45-67"), "79991234567")
        self.assertIsNone(normalize_phone("12345"))
        self.assertIsNone(normalize_phone("1" * 16))


if __name__ == "__main__":
    unittest.main()
