"""cdnspeed: find the fastest CDN edge addresses by latency and download speed."""

__version__ = "0.1.0"
