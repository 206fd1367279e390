"""Building blocks for a distributed actor host: queues, locks, caches, alarms, TLS and SQL helpers."""

__version__ = "0.1.0"