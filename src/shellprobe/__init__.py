"""shellprobe — drive interactive programs through a pseudo-terminal."""

__version__ = "0.1.0"
