"""Unit tests for environment-based configuration."""

import os
import unittest
from unittest.mock import patch

from pydantic import ValidationError

from steerlink.config import Settings
from steerlink.models import DeviceDescriptor


class TestSettings(unittest.TestCase):

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self):
        settings = Settings()

        self.assertIsNone(settings.port)
        self.assertEqual(settings.baudrate, 38400)
        self.assertEqual(settings.handshake_retries, 2)
        self.assertEqual(settings.reconcile_interval_s, 30.0)
        self.assertTrue(settings.disconnect_on_detach)
        self.assertFalse(settings.test_query)

    @patch.dict(os.environ, {
        "STEERLINK_PORT": "/dev/ttyUSB1",
        "STEERLINK_BAUDRATE": "115200",
        "STEERLINK_DISCONNECT_ON_DETACH": "false",
        "STEERLINK_MONITOR_FILTER": "ATCRA 3E9",
    }, clear=True)
    def test_environment(self):
        settings = Settings()

        self.assertEqual(settings.port, "/dev/ttyUSB1")
        self.assertEqual(settings.baudrate, 115200)
        self.assertFalse(settings.disconnect_on_detach)
        self.assertEqual(settings.monitor_filter, "ATCRA 3E9")

    @patch.dict(os.environ, {"STEERLINK_VENDOR_ID": "0x0403", "STEERLINK_PRODUCT_ID": "24577"}, clear=True)
    def test_usb_ids(self):
        """Vendor/product ids accept hex and decimal."""
        settings = Settings()

        self.assertEqual(settings.vendor_id, 0x0403)
        self.assertEqual(settings.product_id, 0x6001)

    @patch.dict(os.environ, {"STEERLINK_VENDOR_ID": ""}, clear=True)
    def test_empty_usb_id(self):
        self.assertIsNone(Settings().vendor_id)

    @patch.dict(os.environ, {"STEERLINK_HANDSHAKE_RETRIES": "many"}, clear=True)
    def test_invalid_value(self):
        with self.assertRaises(ValidationError):
            Settings()

    @patch.dict(os.environ, {}, clear=True)
    def test_descriptor(self):
        settings = Settings(port="/dev/ttyUSB0", vendor_id=0x1A86, baudrate=9600)

        self.assertEqual(
            settings.descriptor(),
            DeviceDescriptor(port="/dev/ttyUSB0", vendor_id=0x1A86, product_id=None, baudrate=9600),
        )


if __name__ == '__main__':
    unittest.main()
