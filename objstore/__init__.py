"""Object storage buckets (in-memory, prefixed, instrumented), transfer helpers and client configuration."""

__version__ = "0.1.0"