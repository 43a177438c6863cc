"""Configuration loading via environment variables."""
from __future__ import annotations

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import DEFAULT_BAUDRATE, DeviceDescriptor


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STEERLINK_", case_sensitive=False)

    port: Optional[str] = None
    vendor_id: Optional[int] = None
    product_id: Optional[int] = None
    baudrate: int = DEFAULT_BAUDRATE
    command_timeout_s: float = 2.0
    reset_timeout_s: float = 5.0
    handshake_retries: int = 2
    test_query: bool = False
    read_timeout_s: float = 0.2
    reconcile_interval_s: float = 30.0
    port_poll_interval_s: float = 1.0
    disconnect_on_detach: bool = True
    monitor_filter: Optional[str] = None

    @field_validator("vendor_id", "product_id", mode="before")
    @classmethod
    def _parse_usb_id(cls, value):
        # USB ids are usually written in hex (0x0403)
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return None
            return int(value, 16) if value.lower().startswith("0x") else int(value)
        return value

    def descriptor(self) -> DeviceDescriptor:
        return DeviceDescriptor(
            port=self.port or None,
            vendor_id=self.vendor_id,
            product_id=self.product_id,
            baudrate=self.baudrate,
        )
