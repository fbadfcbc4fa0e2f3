"""Pydantic Schemas — request/response and job payload validation.

Invariants:
    - Schemas validate at system boundaries (HTTP bodies, queued job payloads)
    - Domain types from core/ used for enum fields

Design Decisions:
    - Separate from models: schemas are contracts, models are persistence
"""
