"""Session transports: CLI subprocesses and in-process SDK streams."""
from .base import Transport, TransportExit, TransportFactory
from .process import ProcessTransport, ProcessTransportFactory
from .stream import SdkTransportFactory, StreamTransport

__all__ = [
    "Transport",
    "TransportExit",
    "TransportFactory",
    "ProcessTransport",
    "ProcessTransportFactory",
    "StreamTransport",
    "SdkTransportFactory",
]
