#!/usr/bin/env python3
"""
Steering wheel monitor for a real ELM327 adapter.

Connects to the adapter (auto-detected, or STEERLINK_PORT), keeps it in
monitor mode and prints every button transition. Reconnects on its own
after errors; exits when the adapter is unplugged unless
STEERLINK_DISCONNECT_ON_DETACH=false.

The button table below is an example; fill in the frames your vehicle sends.
"""

import logging
import sys
import time
from pathlib import Path

# Add package to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from steerlink import (
    BitmaskButtonDecoder,
    ConnectionSupervisor,
    PortWatcher,
    SerialTransport,
    Settings,
    Watchdog,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("MonitorWheel")

# Example layout: third data byte of the wheel frame, one bit per button
BUTTON_BITS = {
    0: 1,  # volume up
    1: 2,  # volume down
    2: 3,  # next
    3: 4,  # previous
    4: 5,  # voice
}


def on_event(event):
    print(f"Button {event.button_id} {event.edge.value} @ {event.timestamp:.3f}")


def main():
    settings = Settings()
    decoder = BitmaskButtonDecoder(byte_index=2, bits=BUTTON_BITS, frame_length=3)

    supervisor = ConnectionSupervisor.from_settings(settings, SerialTransport(), decoder)
    supervisor.subscribe_events(on_event)
    supervisor.subscribe_status(lambda status: logger.info(f"Status: {status.text}"))

    watchdog = Watchdog.from_settings(supervisor, settings)
    port_watcher = PortWatcher(
        on_removed=watchdog.on_device_removed,
        on_attached=lambda port: watchdog.tick_now(),
        interval=settings.port_poll_interval_s,
    )

    port_watcher.start()
    watchdog.start()
    print("Monitoring steering wheel (Ctrl+C to stop)...")

    try:
        while watchdog.is_running:
            time.sleep(0.5)
        print("Adapter detached, exiting.")
    except KeyboardInterrupt:
        print("\nInterrupted by user.")
    finally:
        port_watcher.stop()
        watchdog.stop()
        print("Done.")


if __name__ == "__main__":
    main()
