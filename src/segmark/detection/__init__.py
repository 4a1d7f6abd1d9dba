"""Stream descriptors and content sniffing."""

from .stream_info import StreamInfo
from .guesser import StreamInfoGuesser

__all__ = ["StreamInfo", "StreamInfoGuesser"]
