"""Pydantic Schemas — request/response validation for API endpoints.

Invariants:
    - Schemas validate at system boundary (user input, API responses)

Design Decisions:
    - Domain models from core/chat_models.py are reused as response models;
      only request bodies get dedicated schemas
"""
