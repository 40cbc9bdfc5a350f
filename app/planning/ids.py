"""
Identifier generators injected into template capture, apply and duplicate.
"""
import itertools
import uuid


class IdGenerator:
    """Produces fresh opaque identifiers."""

    def new_id(self) -> str:
        raise NotImplementedError


class UuidIdGenerator(IdGenerator):
    """Random UUID4 strings. Used everywhere outside tests."""

    def new_id(self) -> str:
        return str(uuid.uuid4())


class SequentialIdGenerator(IdGenerator):
    """Deterministic ids: 'stage-1', 'stage-2', ..."""

    def __init__(self, prefix: str = "id", start: int = 1):
        self.prefix = prefix
        self._counter = itertools.count(start)

    def new_id(self) -> str:
        return f"{self.prefix}-{next(self._counter)}"


def default_id_generator() -> IdGenerator:
    return UuidIdGenerator()
