"""Core Layer — domain types, errors, credential primitives and lockout rules.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - No IO and no async: IO happens behind the Protocols in repository_protocols.py

Design Decisions:
    - Functional core separated from imperative shell
"""
