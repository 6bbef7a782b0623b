import unittest

from storefront.config import Settings, validate_settings


class TestSettings(unittest.TestCase):
    def test_origins_from_comma_separated_string(self):
        s = Settings(ALLOWED_ORIGINS="https://shop.test, https://admin.shop.test,")
        self.assertEqual(s.ALLOWED_ORIGINS, ["https://shop.test", "https://admin.shop.test"])

    def test_development_defaults_are_valid(self):
        validate_settings(Settings(ENVIRONMENT="development"))

    def test_production_requires_credentials_and_database(self):
        with self.assertRaises(ValueError) as ctx:
            validate_settings(Settings(ENVIRONMENT="production"))
        message = str(ctx.exception)
        self.assertIn("PAYPAL_ACCESS_TOKEN", message)
        self.assertIn("MPESA_PASSKEY", message)
        self.assertIn("DATABASE_URL", message)

    def test_production_fully_configured(self):
        validate_settings(Settings(
            ENVIRONMENT="production",
            DATABASE_URL="postgresql://shop:secret@db/shop",
            PAYPAL_ACCESS_TOKEN="a",
            MPESA_ACCESS_TOKEN="b",
            MPESA_PASSKEY="c",
        ))


if __name__ == "__main__":
    unittest.main()
