"""Unit tests for BusMonitor running against the ELM327 mock transport."""

import threading
import time
import unittest
from unittest.mock import MagicMock

from steerlink.adapter.bus_monitor import BusMonitor, MonitorExit
from steerlink.models import ButtonChange, DeviceDescriptor, Edge
from steerlink.protocol.decoder import FrameTableDecoder
from steerlink.protocol.session import ProtocolSession
from steerlink.transport.mock import MockTransport

READ_TIMEOUT = 0.05

BUTTON_3_PRESSED = "02 00 08"
BUTTON_3_RELEASED = "02 00 00"


def make_decoder():
    return FrameTableDecoder({
        BUTTON_3_PRESSED: [ButtonChange(3, Edge.PRESSED)],
        BUTTON_3_RELEASED: [ButtonChange(3, Edge.RELEASED)],
    })


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class BusMonitorTestCase(unittest.TestCase):

    def setUp(self):
        self.transport = MockTransport({"ATCRA 3E9": "OK"})
        self.transport.open(DeviceDescriptor())
        self.session = ProtocolSession(self.transport, command_timeout=0.5, read_slice=0.02)
        self.session.handshake()

        self.events = []
        self.exits = []
        self.exited = threading.Event()

    def tearDown(self):
        self.monitor.stop()

    def on_exit(self, monitor, reason, failure):
        self.exits.append((reason, failure))
        self.exited.set()

    def start_monitor(self, **kwargs):
        self.monitor = BusMonitor(
            self.session,
            make_decoder(),
            on_exit=self.on_exit,
            read_timeout=READ_TIMEOUT,
            **kwargs,
        )
        self.monitor.subscribe_events(self.events.append)
        self.monitor.start()
        self.assertTrue(wait_until(lambda: self.transport.is_streaming))
        return self.monitor


class TestBusMonitorEvents(BusMonitorTestCase):
    """Tests for frame decoding and event publishing."""

    def test_press_then_release(self):
        """Pressed then Released frames give two ordered events with increasing timestamps."""
        self.start_monitor()

        self.transport.push_frame(BUTTON_3_PRESSED)
        self.transport.push_frame(BUTTON_3_RELEASED)

        self.assertTrue(wait_until(lambda: len(self.events) >= 2))
        time.sleep(READ_TIMEOUT * 2)
        self.assertEqual(len(self.events), 2)
        pressed, released = self.events
        self.assertEqual((pressed.button_id, pressed.edge), (3, Edge.PRESSED))
        self.assertEqual((released.button_id, released.edge), (3, Edge.RELEASED))
        self.assertLess(pressed.timestamp, released.timestamp)

    def test_malformed_frame_does_not_stop_loop(self):
        """A frame that fails to decode is discarded and monitoring continues."""
        self.start_monitor()

        self.transport.push_frame("7F 7F 7F 7F")
        self.transport.push_frame(BUTTON_3_PRESSED)

        self.assertTrue(wait_until(lambda: len(self.events) == 1))
        self.assertEqual(self.monitor.decode_errors, 1)
        self.assertEqual(self.monitor.frames_seen, 2)
        self.assertTrue(self.monitor.is_running)

    def test_failing_listener_does_not_stop_loop(self):
        self.start_monitor()
        self.monitor.subscribe_events(MagicMock(side_effect=RuntimeError("listener bug")))

        self.transport.push_frame(BUTTON_3_PRESSED)
        self.transport.push_frame(BUTTON_3_RELEASED)

        self.assertTrue(wait_until(lambda: len(self.events) == 2))
        self.assertTrue(self.monitor.is_running)

    def test_unsubscribe(self):
        self.start_monitor()
        received = []
        unsubscribe = self.monitor.subscribe_events(received.append)
        unsubscribe()

        self.transport.push_frame(BUTTON_3_PRESSED)

        self.assertTrue(wait_until(lambda: len(self.events) == 1))
        self.assertEqual(received, [])

    def test_noise_lines_skipped(self):
        self.start_monitor()

        self.transport.push_frame("NO DATA")
        self.transport.push_frame(BUTTON_3_PRESSED)

        self.assertTrue(wait_until(lambda: len(self.events) == 1))
        self.assertEqual(self.monitor.decode_errors, 0)

    def test_filter_sent_before_streaming(self):
        self.start_monitor(monitor_filter="ATCRA 3E9")

        written = self.transport.written
        self.assertEqual(written[-2:], ["ATCRA 3E9", "ATMA"])

    def test_rearm_after_buffer_full(self):
        """When the adapter drops out of ATMA on its own, streaming is resumed."""
        self.start_monitor()

        self.transport.interrupt_stream("BUFFER FULL")
        self.assertTrue(wait_until(lambda: self.transport.call_count["ATMA"] == 2))
        self.assertTrue(wait_until(lambda: self.transport.is_streaming))

        self.transport.push_frame(BUTTON_3_PRESSED)
        self.assertTrue(wait_until(lambda: len(self.events) == 1))


class TestBusMonitorExit(BusMonitorTestCase):
    """Tests for the two exit paths."""

    def test_stop(self):
        """stop() ends the loop, leaves streaming mode and reports STOPPED."""
        monitor = self.start_monitor()

        start = time.monotonic()
        monitor.stop()

        self.assertLess(time.monotonic() - start, 1.0)
        self.assertFalse(monitor.is_running)
        self.assertFalse(self.transport.is_streaming)
        self.assertEqual(self.exits, [(MonitorExit.STOPPED, None)])
        self.assertEqual(monitor.exit_reason, MonitorExit.STOPPED)

    def test_stop_after_adapter_left_streaming(self):
        """Stopping once the adapter is back at its prompt must not restart the stream."""
        monitor = self.start_monitor()

        monitor.request_stop()
        self.transport.interrupt_stream("BUFFER FULL")
        monitor.stop()

        self.assertFalse(self.transport.is_streaming)
        self.assertEqual(self.transport.call_count["ATMA"], 1)
        self.assertEqual(self.exits, [(MonitorExit.STOPPED, None)])

    def test_transport_failure(self):
        """A read failure ends the loop within one bounded read and reports IO_FAILURE."""
        monitor = self.start_monitor()

        self.transport.fail_io("unplugged")

        self.assertTrue(self.exited.wait(READ_TIMEOUT * 10))
        reason, failure = self.exits[0]
        self.assertEqual(reason, MonitorExit.IO_FAILURE)
        self.assertIn("unplugged", str(failure))
        self.assertTrue(wait_until(lambda: not monitor.is_running))

    def test_start_twice(self):
        monitor = self.start_monitor()
        thread = monitor._thread

        monitor.start()

        self.assertIs(monitor._thread, thread)


if __name__ == '__main__':
    unittest.main()
