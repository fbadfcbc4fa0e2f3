"""Services Layer — login, sessions, password reset, job queue and email dispatch.

Invariants:
    - Services depend on Protocols and on stores passed in at construction
    - Job routing is an exhaustive match over JobType (worker.py)

Design Decisions:
    - One service per concern, wired together in bootstrap.py
"""
