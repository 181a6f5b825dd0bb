"""
Per-test identifier allocation.

Every live test needs a numeric id that no other concurrently running test
holds: the id picks the test's subnet, MAC addresses and listener port.
"""

import threading
import uuid

from .exceptions import AllocationExhaustedError
from .logging import get_logger
from .models import TestIdentity

logger = get_logger(__name__)

MAX_ID = 255


class ResourceAllocator:
    """
    Lock-guarded counter handing out test identifiers.

    Identifiers are never reused within the allocator's lifetime. Share one
    instance between all tests of a run (a session-scoped fixture), and
    create a fresh one to test allocation in isolation.
    """

    def __init__(self, start: int = 1):
        if not 1 <= start <= MAX_ID:
            raise ValueError(f"start must be within 1..{MAX_ID}, got {start}")
        self._next = start
        self._lock = threading.Lock()

    def allocate(self) -> int:
        """Return the next unused identifier."""
        with self._lock:
            value = self._next
            if value > MAX_ID:
                raise AllocationExhaustedError(
                    f"All {MAX_ID} test identifiers are in use",
                    {"next": value},
                )
            self._next = value + 1

        logger.debug("Allocated test id {}", value)
        return value

    def new_identity(self) -> TestIdentity:
        """Allocate an id and derive the domain name and UUID from it."""
        numeric_id = self.allocate()
        return TestIdentity(
            numeric_id=numeric_id,
            name=f"vm-{numeric_id}",
            uuid=str(uuid.uuid4()),
        )
