"""
Guest readiness probing.

The prober repeatedly runs a cheap command on the guest until it succeeds
or the retry budget runs out. Attempts are spaced by a fixed interval.

    PROBING --success--> READY
    PROBING --budget exhausted--> TIMED_OUT (BootTimeoutError)
"""

import time
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, Field

from .config import GuestConfig
from .exceptions import BootTimeoutError, HarnessError
from .logging import get_logger, log_performance
from .remote import DEFAULT_SSH_RETRIES, CommandExecutor

logger = get_logger(__name__)


class ProbeState(str, Enum):
    PROBING = "probing"
    READY = "ready"
    TIMED_OUT = "timed_out"


class ImageClass(str, Enum):
    """Guest image weight, used to pick default retry budgets."""

    STANDARD = "standard"
    HEAVY = "heavy"


class ProbeResult(BaseModel):
    state: ProbeState = Field(description="Final probe state")
    attempts: int = Field(description="Attempts made, including the successful one")


class ReadinessProber:
    """Bounded fixed-interval retry loop around a readiness command."""

    def __init__(
        self,
        executor: CommandExecutor,
        command: str = "true",
        retries: int = 20,
        connect_retries: int = DEFAULT_SSH_RETRIES,
        timeout: float = 10.0,
        interval: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if retries < 1:
            raise ValueError(f"retries must be at least 1, got {retries}")
        if connect_retries < 1:
            raise ValueError(f"connect_retries must be at least 1, got {connect_retries}")
        self.executor = executor
        self.command = command
        self.retries = retries
        self.connect_retries = connect_retries
        self.timeout = timeout
        self.interval = interval
        self._sleep = sleep
        self.state = ProbeState.PROBING

    @classmethod
    def for_image_class(
        cls,
        executor: CommandExecutor,
        guest_config: GuestConfig,
        image_class: ImageClass = ImageClass.STANDARD,
        retries: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "ReadinessProber":
        """Build a prober with the configured defaults for an image class."""
        if retries is None:
            retries = guest_config.heavy_retries if image_class == ImageClass.HEAVY else guest_config.retries
        return cls(
            executor,
            command=guest_config.probe_command,
            retries=retries,
            connect_retries=guest_config.connect_retries,
            timeout=guest_config.timeout,
            interval=guest_config.interval,
            sleep=sleep,
        )

    @log_performance(threshold_ms=120000.0, level="INFO")
    def wait(self, address: str) -> ProbeResult:
        """Block until ``address`` answers the probe command."""
        self.state = ProbeState.PROBING

        for attempt in range(1, self.retries + 1):
            try:
                self.executor.execute(self.command, address, self.connect_retries, self.timeout)
            except HarnessError as e:
                logger.debug("Guest {} not ready (attempt {}/{}): {}", address, attempt, self.retries, e)
                if attempt < self.retries:
                    self._sleep(self.interval)
                continue

            self.state = ProbeState.READY
            logger.info("Guest {} ready after {} attempt(s)", address, attempt)
            return ProbeResult(state=self.state, attempts=attempt)

        self.state = ProbeState.TIMED_OUT
        logger.error("Guest {} did not become reachable after {} attempts", address, self.retries)
        raise BootTimeoutError(
            f"Guest {address} did not boot after {self.retries} attempts",
            attempts=self.retries,
            details={"address": address, "command": self.command},
        )
