"""Unit tests for the adapter_finder package."""

import unittest
from unittest.mock import MagicMock, patch

from steerlink.errors import NoDeviceError
from steerlink.transport.adapter_finder import (
    AdapterInfo,
    AdapterNotFoundError,
    MultipleAdaptersError,
    find_adapters,
    find_single_adapter,
    is_matching_adapter,
    list_port_ids,
    lookup_port,
)


def _port(device, vid=None, pid=None, product=None):
    port = MagicMock()
    port.device = device
    port.vid = vid
    port.pid = pid
    port.manufacturer = None
    port.product = product
    port.serial_number = None
    port.hwid = "n/a"
    return port


FTDI = _port("/dev/ttyUSB0", 0x0403, 0x6001, "FT232R USB UART")
CH340 = _port("/dev/ttyUSB1", 0x1A86, 0x7523, "USB Serial")
MODEM = _port("/dev/ttyACM0", 0x1234, 0x5678, "Some Modem")
BUILTIN = _port("/dev/ttyS0")


class TestIsMatchingAdapter(unittest.TestCase):
    """Tests for the matching predicate."""

    def _info(self, vid, pid, product=None):
        return AdapterInfo("/dev/x", vid, pid, product)

    def test_known_bridge_matches_by_default(self):
        self.assertTrue(is_matching_adapter(self._info(0x0403, 0x6001)))
        self.assertTrue(is_matching_adapter(self._info(0x1A86, 0x7523)))

    def test_unknown_device_rejected_by_default(self):
        self.assertFalse(is_matching_adapter(self._info(0x1234, 0x5678)))
        self.assertFalse(is_matching_adapter(self._info(None, None)))

    def test_explicit_ids_override_known_list(self):
        info = self._info(0x1234, 0x5678)
        self.assertTrue(is_matching_adapter(info, expected_vid=0x1234, expected_pid=0x5678))
        self.assertFalse(is_matching_adapter(info, expected_vid=0x1234, expected_pid=0x0001))

    def test_product_hint(self):
        info = self._info(0x0403, 0x6001, "FT232R USB UART")
        self.assertTrue(is_matching_adapter(info, product_hint="ft232"))
        self.assertFalse(is_matching_adapter(info, product_hint="CH340"))


@patch('steerlink.transport.adapter_finder.core.list_ports.comports')
class TestFindAdapters(unittest.TestCase):
    """Tests for discovery over the host port list."""

    def test_find_known_bridges(self, mock_comports):
        mock_comports.return_value = [FTDI, MODEM, BUILTIN, CH340]

        ports = [info.port for info in find_adapters()]

        self.assertEqual(ports, ["/dev/ttyUSB0", "/dev/ttyUSB1"])

    def test_find_with_custom_matcher(self, mock_comports):
        mock_comports.return_value = [FTDI, MODEM]

        found = find_adapters(matcher=lambda info: info.port.endswith("ACM0"))

        self.assertEqual([info.port for info in found], ["/dev/ttyACM0"])

    def test_single_adapter(self, mock_comports):
        mock_comports.return_value = [FTDI, MODEM]

        info = find_single_adapter()

        self.assertEqual(info.port, "/dev/ttyUSB0")
        self.assertEqual(info.device_id, "/dev/ttyUSB0")

    def test_no_adapter(self, mock_comports):
        mock_comports.return_value = [MODEM]

        with self.assertRaises(AdapterNotFoundError) as ctx:
            find_single_adapter()
        self.assertIsInstance(ctx.exception, NoDeviceError)

    def test_multiple_adapters_refused(self, mock_comports):
        mock_comports.return_value = [FTDI, CH340]

        with self.assertRaises(MultipleAdaptersError) as ctx:
            find_single_adapter()
        self.assertEqual(len(ctx.exception.adapters), 2)

    def test_lookup_port(self, mock_comports):
        mock_comports.return_value = [FTDI, BUILTIN]

        self.assertEqual(lookup_port("/dev/ttyUSB0").vid, 0x0403)
        self.assertIsNone(lookup_port("/dev/ttyUSB7"))

    def test_list_port_ids(self, mock_comports):
        mock_comports.return_value = [FTDI, BUILTIN]

        self.assertEqual(list_port_ids(), frozenset({"/dev/ttyUSB0", "/dev/ttyS0"}))


if __name__ == '__main__':
    unittest.main()
