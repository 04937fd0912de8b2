"""Named tools over the Wayback services.

Public symbols:

- ``ToolRegistry``: builds every service on a shared client and dispatches
  ``call(name, arguments)`` to them, always returning a JSON document.
- ``Tool``: name, description, input model and handler of one tool.
"""

from __future__ import annotations

from wayback_observatory.tools.registry import Tool, ToolRegistry

__all__ = [
    "Tool",
    "ToolRegistry",
]
