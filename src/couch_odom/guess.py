"""Motion guess for the next odometry update, taken from TF."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .oracle import TransformOracle
from .transform import Transform

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MotionGuess:
    """Guess handed to the engine; ``transform`` None means "no guess"."""
    transform: Transform | None = None


class MotionGuessProvider:
    """Computes ``previous⁻¹ · current`` of odom -> guess_frame from TF.

    When disabled every cycle gets an empty guess. When enabled and either
    lookup fails, ``compute`` returns None and the cycle must be skipped.
    """

    def __init__(
        self,
        oracle: TransformOracle,
        odom_frame_id: str,
        guess_frame_id: str,
        enabled: bool = False,
        timeout: float = 0.1,
    ) -> None:
        self.oracle = oracle
        self.odom_frame_id = odom_frame_id
        self.guess_frame_id = guess_frame_id
        self.enabled = enabled
        self.timeout = timeout

    def compute(self, previous_stamp: float, stamp: float) -> MotionGuess | None:
        if not self.enabled:
            return MotionGuess()

        previous = self.oracle.lookup(self.odom_frame_id, self.guess_frame_id, previous_stamp, self.timeout)
        current = self.oracle.lookup(self.odom_frame_id, self.guess_frame_id, stamp, self.timeout)
        if previous is None or current is None:
            logger.error(
                f'"guess_from_tf" is true, but guess cannot be computed between frames '
                f'"{self.odom_frame_id}" -> "{self.guess_frame_id}". Aborting odometry update...'
            )
            return None
        return MotionGuess(previous.inverse() @ current)
