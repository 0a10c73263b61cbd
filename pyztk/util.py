from typing import Optional, TypeVar

T = TypeVar('T')


def ensure(value: Optional[T], what: str = "value") -> T:
    """Narrow an Optional, raising RuntimeError when it is None.

    Used where an earlier check already guarantees presence, e.g. the PR
    number of a mergeable stack entry.
    """
    if value is None:
        raise RuntimeError(f"Expected {what}, got None")
    return value
