"""Pydantic schemas for operation parameters.

Sub-modules:
    queries: one parameter model per Wayback operation / tool
"""

from __future__ import annotations
