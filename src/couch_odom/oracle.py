"""Transform lookups between named frames.

``TransformOracle.lookup(parent, child, stamp, timeout)`` returns the pose of
``child`` expressed in ``parent`` at ``stamp`` or ``None`` when it cannot be
resolved. A stamp of 0 asks for the latest available transform.
"""

from __future__ import annotations

import bisect
import logging
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass

from .transform import Transform

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StampedTransform:
    stamp: float
    parent: str
    child: str
    transform: Transform
    static: bool = False


class TransformOracle(ABC):
    @abstractmethod
    def lookup(
        self,
        parent: str,
        child: str,
        stamp: float,
        timeout: float = 0.0,
    ) -> Transform | None:
        """Pose of ``child`` in ``parent`` at ``stamp``; None if unavailable."""


class _EdgeHistory:
    """Time-ordered samples of a single parent -> child edge."""

    def __init__(self) -> None:
        self.stamps: list[float] = []
        self.transforms: list[Transform] = []
        self.static: Transform | None = None

    def insert(self, stamp: float, transform: Transform) -> None:
        i = bisect.bisect_left(self.stamps, stamp)
        if i < len(self.stamps) and self.stamps[i] == stamp:
            self.transforms[i] = transform
            return
        self.stamps.insert(i, stamp)
        self.transforms.insert(i, transform)

    def at(self, stamp: float, tolerance: float) -> Transform | None:
        if self.static is not None:
            return self.static
        if not self.stamps:
            return None
        if stamp == 0.0:
            return self.transforms[-1]

        i = bisect.bisect_left(self.stamps, stamp)
        if i < len(self.stamps) and self.stamps[i] == stamp:
            return self.transforms[i]
        if i == 0:
            if self.stamps[0] - stamp <= tolerance:
                return self.transforms[0]
            return None
        if i == len(self.stamps):
            if stamp - self.stamps[-1] <= tolerance:
                return self.transforms[-1]
            return None

        t0, t1 = self.stamps[i - 1], self.stamps[i]
        alpha = (stamp - t0) / (t1 - t0)
        return self.transforms[i - 1].interpolate(self.transforms[i], alpha)


class TransformHistory(TransformOracle):
    """In-memory transform tree, e.g. filled from ``/tf`` records of a bag.

    Lookups interpolate between samples, walk multi-edge chains in either
    direction and refuse to extrapolate further than ``tolerance`` seconds.
    """

    def __init__(self, tolerance: float = 0.0) -> None:
        self.tolerance = tolerance
        self._edges: dict[tuple[str, str], _EdgeHistory] = {}
        self._neighbors: dict[str, set[str]] = {}

    def __len__(self) -> int:
        return len(self._edges)

    def add(self, st: StampedTransform) -> None:
        key = (st.parent, st.child)
        edge = self._edges.get(key)
        if edge is None:
            edge = _EdgeHistory()
            self._edges[key] = edge
            self._neighbors.setdefault(st.parent, set()).add(st.child)
            self._neighbors.setdefault(st.child, set()).add(st.parent)
        if st.static:
            edge.static = st.transform
        else:
            edge.insert(st.stamp, st.transform)

    def add_transform(
        self,
        parent: str,
        child: str,
        stamp: float,
        transform: Transform,
        static: bool = False,
    ) -> None:
        self.add(StampedTransform(stamp, parent, child, transform, static))

    def extend(self, transforms: Iterable[StampedTransform]) -> None:
        for st in transforms:
            self.add(st)

    def _path(self, start: str, goal: str) -> list[str] | None:
        if start not in self._neighbors or goal not in self._neighbors:
            return None
        prev: dict[str, str | None] = {start: None}
        queue = deque([start])
        while queue:
            node = queue.popleft()
            if node == goal:
                break
            for nxt in self._neighbors[node]:
                if nxt not in prev:
                    prev[nxt] = node
                    queue.append(nxt)
        if goal not in prev:
            return None
        path = [goal]
        while path[-1] != start:
            path.append(prev[path[-1]])  # type: ignore[arg-type]
        path.reverse()
        return path

    def _edge_at(self, a: str, b: str, stamp: float) -> Transform | None:
        edge = self._edges.get((a, b))
        if edge is not None:
            return edge.at(stamp, self.tolerance)
        tf = self._edges[(b, a)].at(stamp, self.tolerance)
        return None if tf is None else tf.inverse()

    def lookup(
        self,
        parent: str,
        child: str,
        stamp: float,
        timeout: float = 0.0,
    ) -> Transform | None:
        if parent == child:
            return Transform.identity()
        path = self._path(parent, child)
        if path is None:
            logger.warning(f'Could not get transform from {parent} to {child}: frames are not connected')
            return None

        result = Transform.identity()
        for a, b in zip(path, path[1:]):
            tf = self._edge_at(a, b, stamp)
            if tf is None:
                logger.warning(
                    f"Could not get transform from {parent} to {child} (stamp={stamp:.6f}): "
                    f"no data for {a} -> {b} at that time"
                )
                return None
            result = result @ tf
        return result
