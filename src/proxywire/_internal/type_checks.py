from __future__ import annotations

import types
from typing import Any, TypeGuard


def is_runtime_class(candidate: object) -> TypeGuard[type[Any]]:
    """Return true when candidate is a runtime class that can be subclassed or instantiated.

    Parameterized generics such as ``list[int]`` are rejected even though
    ``isinstance(list[int], type)`` holds on some Python versions.

    Args:
        candidate: Value being checked.

    """
    return isinstance(candidate, type) and not isinstance(candidate, types.GenericAlias)
