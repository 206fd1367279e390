# francis

Building blocks for hosting actors across a cluster of machines. Each module
can be used by itself:

- `francis.timeutils`: ISO 8601 durations (`Duration`, `parse_iso8601_duration`,
  `parse_duration_string`, which also accepts strings such as `1h2m3s`),
  lenient parsing of timestamps and durations (`parse_time`, `parse_duration`)
  and calendar arithmetic (`add_date`).
- `francis.ref`: references to actors and alarms (`ActorRef`, `AlarmRef`),
  alarm leases (`AlarmLease`) and alarm schedules (`AlarmProperties`, whose
  `next_execution` computes the next run of a repeating alarm).
- `francis.clock`: a `RealClock` and a `FakeClock` that tests step by hand
  (`step`, `set_time`, `has_waiters`). Both schedule callbacks with `call_later`.
- `francis.eventqueue`: a priority queue ordered by due time (`DelayQueue`) and a
  `Processor` that hands each item to a callback, on a background thread, when
  it falls due. Using a closed processor raises `ProcessorStoppedError`.
- `francis.ttlcache`: a `TTLCache` whose entries expire, with an optional
  maximum TTL and periodic cleanup.
- `francis.locker`: a `TurnBasedLocker` that hands the lock out in FIFO order,
  with timeouts, cancellation through a `threading.Event`, and `stop` /
  `stop_and_wait`.
- `francis.servicerunner`: a `ServiceRunner` that runs async services together,
  cancels the rest as soon as one ends, and raises the errors of failed
  services together as an exception group.
- `francis.logutil`: `fatal_error` (logs, then raises `SystemExit(1)`), a logger
  kept in a context variable (`set_context_logger`, `get_context_logger`) and
  `install_signal_handler`, which returns an event set on the first SIGINT or
  SIGTERM and ends the process on the second.
- `francis.hosttls`: `HostTLSOptions.get_tls_config` builds server and client
  `TLSConfig` objects (TLS 1.3 minimum, ALPN `h3` on the client), generating a
  self-signed certificate when none is given; `TLSConfig.to_ssl_context` turns
  one into an `ssl.SSLContext`.
- `francis.peerauth`: peer authentication by shared key in the `Authorization`
  header (`PeerAuthenticationSharedKey`, key at least 16 characters) or by
  mutual TLS (`PeerAuthenticationMTLS`, which checks that the certificate
  allows both server and client authentication).
- `francis.sqladapter`, `francis.migrations`, `francis.transactions`,
  `francis.cleanup`, `francis.sqlite_migrations`, `francis.postgres_migrations`:
  helpers over DB-API connections for numbered schema migrations, running a
  function in a transaction, and periodic deletion of expired rows.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Example: running items when they fall due

Queued items need a hashable `key` and a `due_time` attribute; an item with the
same key as one already queued replaces it.

```python
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from francis.eventqueue import Processor


@dataclass(eq=False)
class Job:
    key: str
    due_time: datetime


processor = Processor(lambda job: print("Executed:", job.key))
now = datetime.now(timezone.utc)
processor.enqueue(
    Job("item1", now + timedelta(milliseconds=500)),
    Job("item2", now + timedelta(milliseconds=200)),
)
processor.enqueue(Job("item1", now + timedelta(milliseconds=100)))
time.sleep(1)
processor.close()
# Executed: item1
# Executed: item2
```

## Example: durations

```python
from francis.timeutils import parse_duration, parse_iso8601_duration

d = parse_iso8601_duration("P1Y2M3DT4H5M6.007S")
print(d.years, d.months, d.days)   # 1 2 3
print(str(d))                      # P1Y2M3DT4H5M6.007S
print(parse_duration("1234"))      # PT1.234S
```

## Example: a cache on a fake clock

```python
from datetime import timedelta

from francis.clock import FakeClock
from francis.ttlcache import TTLCache

clock = FakeClock()
with TTLCache(max_ttl=timedelta(seconds=15), clock=clock) as cache:
    cache.set("a", "value", timedelta(seconds=2))
    print(cache.get("a"))   # value
    clock.step(3)
    print(cache.get("a"))   # None
```

## Example: turn-based locking

```python
from francis.locker import TurnBasedLocker

locker = TurnBasedLocker()
with locker:
    ...  # work while holding the turn
```

## Example: SQLite migrations

```python
import sqlite3

from francis.sqlite_migrations import SQLiteMigrations

conn = sqlite3.connect(":memory:", isolation_level=None)
SQLiteMigrations(conn, "metadata", "migrations-version").perform([
    lambda: conn.execute("CREATE TABLE items (id INTEGER PRIMARY KEY)"),
])
```

## What the package does not do

There is no actor host here: no server, no network transport between hosts,
no actor runtime and no command to run. The database helpers ship no driver
and no schema of their own; they work on DB-API connections you open
yourself, and PostgreSQL support needs a driver such as one you install
separately.