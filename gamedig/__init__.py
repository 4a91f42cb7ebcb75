"""Game server query building blocks: errors, packet buffers, traffic capture and id rules."""

__version__ = "0.1.0"

__all__ = ["buffer", "capture", "errors", "idrules", "packet", "pcap"]