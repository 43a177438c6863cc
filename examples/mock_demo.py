#!/usr/bin/env python3
"""Hardware-free demo of the supervisor against the simulated adapter.

Walks through:
1. Reconciling into monitoring
2. Button events decoded from bus frames
3. An adapter that drops out of monitor mode and is re-armed
4. A transport failure and automatic recovery
5. Detaching the adapter
"""

import logging
import sys
import time
from pathlib import Path

# Add package to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from steerlink import (
    ButtonChange,
    ConnectionSupervisor,
    DeviceDescriptor,
    Edge,
    FrameTableDecoder,
    MockTransport,
    RemovalNotice,
    Watchdog,
)

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger("MockDemo")

PORT = "/dev/ttyUSB0"

FRAMES = {
    "02 00 08": [ButtonChange(3, Edge.PRESSED)],
    "02 00 00": [ButtonChange(3, Edge.RELEASED)],
    "02 00 01": [ButtonChange(1, Edge.PRESSED)],
}


def print_step(step_num: int, title: str):
    print(f"\n{'='*60}")
    print(f"STEP {step_num}: {title}")
    print(f"{'='*60}")


def on_event(event):
    print(f">>> [EVENT] button {event.button_id} {event.edge.value}")


def main():
    transport = MockTransport()
    supervisor = ConnectionSupervisor(
        transport,
        FrameTableDecoder(FRAMES),
        descriptor=DeviceDescriptor(port=PORT),
        command_timeout=0.5,
        reset_timeout=1.0,
    )
    supervisor.subscribe_events(on_event)
    watchdog = Watchdog(supervisor, interval=1.0, disconnect_on_detach=True)

    print_step(1, "Reconciling")
    watchdog.start()
    time.sleep(0.5)
    print(f"Status: {supervisor.status().text}")
    print(f"Adapter: {supervisor.adapter}")

    print_step(2, "Pressing buttons")
    for frame in ("02 00 08", "02 00 00", "7F 7F", "02 00 01"):
        print(f"Bus frame: {frame}")
        transport.push_frame(frame)
        time.sleep(0.3)

    print_step(3, "Adapter buffer overflow")
    transport.interrupt_stream("BUFFER FULL")
    time.sleep(0.5)
    transport.push_frame("02 00 08")
    time.sleep(0.3)

    print_step(4, "Transport failure")
    transport.fail_io("simulated cable fault")
    time.sleep(0.3)
    print(f"Status: {supervisor.status().text} ({supervisor.status().reason})")
    time.sleep(1.5)
    print(f"Status after next tick: {supervisor.status().text}")

    print_step(5, "Detach")
    watchdog.on_device_removed(RemovalNotice(PORT))
    time.sleep(0.3)
    print(f"Status: {supervisor.status().text}, watchdog running: {watchdog.is_running}")

    watchdog.stop()
    print("\nDone.")


if __name__ == "__main__":
    main()
