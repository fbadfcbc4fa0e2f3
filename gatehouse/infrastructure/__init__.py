"""Infrastructure Layer — database, SMTP, Redis and logging adapters.

Invariants:
    - Infrastructure errors leave this layer as GatehouseError subclasses
    - Blocking client libraries run off the event loop

Design Decisions:
    - Thin adapters behind core Protocols: tests swap them for in-process fakes
"""
