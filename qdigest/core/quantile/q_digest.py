# pylint: disable=line-too-long
"""
Q-digest for streaming quantile estimation over non-negative integers.

Implementation of the mergeable quantile summary from:
N. Shrivastava, C. Buragohain, D. Agrawal and S. Suri. Medians and beyond: new
aggregation techniques for sensor networks. In SenSys, pages 239–249, 2004.

The answer to ``get_quantile(q)`` has a true rank within ``q ± eps`` where
``eps = log_capacity / compression_factor`` and ``log_capacity`` is the height
of the tree, i.e. the ceiling of the binary log of the largest value offered.

Compression differs slightly from the paper:
- after each insertion the counts are compressed along the path from the new
  leaf to the root only;
- when the digest grows past the theoretical bound of ``3 * compression_factor``
  nodes, or after a rebuild or a union, the whole digest is compressed.
"""

import logging
import operator
from collections import deque
from math import floor
from typing import Dict, List, Tuple

import numpy as np

from qdigest.constants import NODE_BOUND_MULTIPLIER
from qdigest.exceptions import IncompatibleCompressionFactorError

from .quantile_estimator import QuantileEstimator
from .tree import (
    is_leaf,
    is_root,
    left_child,
    parent,
    range_left,
    range_right,
    sibling,
    value_to_leaf,
)

logger: logging.Logger = logging.getLogger(__name__)


class QDigest(QuantileEstimator):
    """
    Q-digest quantile summary over a stream of non-negative integers.

    Values live at the leaves of an implicit complete binary tree of height
    ``log_capacity``; only nodes with a non-zero count are stored. Counts are
    folded into parents whenever a node, its sibling and its parent together
    hold no more than ``floor(observed_count / compression_factor)`` items.

    Invariant ("property 2"), exact after :meth:`compress`: for every stored
    non-root node v, count(v) + count(sibling(v)) + count(parent(v)) > threshold.

    Example usage:
        >>> digest = QDigest(compression_factor=100)
        >>> for latency_ms in stream:
        ...     digest.offer(latency_ms)
        >>> p99 = digest.get_quantile(0.99)
    """

    def __init__(self, compression_factor: float):
        """
        Initialize an empty q-digest.

        :param compression_factor: Error parameter k > 0. The digest keeps at most
                                   about 3k nodes and the rank error of a query is
                                   bounded by log_capacity / k.
        :raises ValueError: If compression_factor is not positive
        """
        if not compression_factor > 0:
            raise ValueError("compression_factor must be positive")

        self.compression_factor = compression_factor
        self.observed_count = 0
        self.log_capacity = 0
        self.node_counts: Dict[int, int] = {}

    def offer(self, value: int) -> None:
        """
        Record one occurrence of a value.

        :param value: Non-negative integer to insert
        :raises ValueError: If value is negative or not an integer
        """
        value = self._check_value(value)

        if value >= 1 << self.log_capacity:
            self._rebuild_to_log_capacity(value.bit_length())

        leaf = value_to_leaf(value, self.log_capacity)
        self.node_counts[leaf] = self._get(leaf) + 1
        self.observed_count += 1

        self._compress_upward(leaf)
        if len(self.node_counts) > NODE_BOUND_MULTIPLIER * self.compression_factor:
            self.compress()

    def offer_batch(self, values: list[int] | np.ndarray) -> None:
        """
        Insert multiple values in order.

        :param values: Array-like of non-negative integers
        """
        for v in np.asarray(values).ravel():
            self.offer(v)

    @staticmethod
    def union_of(a: "QDigest", b: "QDigest") -> "QDigest":
        """
        Merge two digests into a new one, as if it had observed both streams.

        Neither input is modified.

        :param a: First digest
        :param b: Second digest
        :return: A new digest holding the combined counts
        :raises IncompatibleCompressionFactorError: If the compression factors differ
        """
        if a.compression_factor != b.compression_factor:
            raise IncompatibleCompressionFactorError(a.compression_factor, b.compression_factor)
        if a.log_capacity > b.log_capacity:
            a, b = b, a

        logger.debug(f"Union of digests with {len(a.node_counts)} and {len(b.node_counts)} nodes")

        merged = QDigest(a.compression_factor)
        merged.log_capacity = a.log_capacity
        merged.observed_count = a.observed_count
        merged.node_counts = dict(a.node_counts)

        if b.log_capacity > merged.log_capacity:
            merged._rebuild_to_log_capacity(b.log_capacity)

        for node, count in b.node_counts.items():
            merged.node_counts[node] = merged._get(node) + count
        merged.observed_count += b.observed_count

        merged.compress()
        return merged

    def merge(self, other: "QDigest") -> "QDigest":
        """
        Merge this digest with another into a new digest.

        :param other: Another q-digest with the same compression factor
        :return: A new merged digest
        :raises IncompatibleCompressionFactorError: If the compression factors differ
        """
        return QDigest.union_of(self, other)

    def compress(self) -> None:
        """
        Restore property 2 at every node.

        Every stored node is a candidate. Folding a pair into its parent lowers
        the triple sums of the pair's children, and the parent itself may now
        be foldable, so all of those are queued as new candidates until nothing
        more can be folded. On return no stored non-root node has a triple sum
        at or below the threshold.
        """
        nodes_before = len(self.node_counts)
        threshold = self._threshold()
        queue = deque(self.node_counts)

        while queue:
            node = queue.popleft()
            if is_root(node):
                continue
            at_node = self._get(node)
            at_sibling = self._get(sibling(node))
            if at_node == 0 and at_sibling == 0:
                continue
            at_parent = self._get(parent(node))
            if at_node + at_sibling + at_parent > threshold:
                continue

            self.node_counts[parent(node)] = at_parent + at_node + at_sibling
            self.node_counts.pop(node, None)
            self.node_counts.pop(sibling(node), None)
            if not is_leaf(node, self.log_capacity):
                queue.append(left_child(node))
                queue.append(left_child(sibling(node)))
            if not is_root(parent(node)):
                queue.append(parent(node))

        logger.debug(f"Full compression: {nodes_before} -> {len(self.node_counts)} nodes (threshold={threshold})")

    def _compress_upward(self, node: int) -> None:
        """
        Restore property 2 at node and up the path to the root.

        This can break property 2 sideways; compress() repairs that when the
        digest grows too large.
        """
        at_node = self._get(node)
        while not is_root(node):
            threshold = self._threshold()
            if at_node > threshold:
                break
            at_sibling = self._get(sibling(node))
            if at_node + at_sibling > threshold:
                break
            at_parent = self._get(parent(node))
            if at_node + at_sibling + at_parent > threshold:
                break

            self.node_counts[parent(node)] = at_parent + at_node + at_sibling
            del self.node_counts[node]
            if at_sibling > 0:
                del self.node_counts[sibling(node)]
            node = parent(node)
            at_node = at_parent + at_node + at_sibling

    def _rebuild_to_log_capacity(self, new_log_capacity: int) -> None:
        """
        Grow the tree so the current one becomes its leftmost subtree.

        Each layer of the old tree shifts by a constant. Going from
        log_capacity 2 (values 0..3) to 5 (values 0..31):
        node 1 -> 8 (+7 = 2^0 * (2^3 - 1)), nodes 2..3 -> 16..17 (+14 = 2^1 * 7),
        nodes 4..7 -> 32..35 (+28 = 2^2 * 7).
        """
        logger.debug(
            f"Rebuilding digest from log_capacity={self.log_capacity} to {new_log_capacity} "
            f"({len(self.node_counts)} nodes)"
        )
        scale_r = (1 << (new_log_capacity - self.log_capacity)) - 1
        scale_l = 1
        rebuilt: Dict[int, int] = {}
        for node in sorted(self.node_counts):
            while scale_l <= node // 2:
                scale_l <<= 1
            rebuilt[node + scale_l * scale_r] = self.node_counts[node]

        self.node_counts = rebuilt
        self.log_capacity = new_log_capacity
        self.compress()

    def to_ascending_ranges(self) -> List[Tuple[int, int, int]]:
        """
        List the stored nodes as value ranges with their counts.

        :return: ``(left, right, count)`` tuples sorted by right boundary, then by width
        """
        ranges = [
            (range_left(node, self.log_capacity), range_right(node, self.log_capacity), count)
            for node, count in self.node_counts.items()
        ]
        ranges.sort(key=lambda r: (r[1], r[1] - r[0]))
        return ranges

    def get_quantile(self, q: float) -> int:
        """
        Query for the q-quantile (approximate).

        :param q: Quantile to query, must be in [0, 1]
        :return: Right boundary of the range where the cumulative count passes q * observed_count
        :raises ValueError: If q is not in [0, 1] or the digest is empty
        """
        self._check_quantile(q)
        return self._quantile_from_ranges(self.to_ascending_ranges(), q)

    def quantiles(self, qs: list[float] | np.ndarray) -> np.ndarray:
        """
        Query several quantiles against a single snapshot of the ranges.

        :param qs: Array-like of quantiles in [0, 1]
        :return: Array of estimated values, one per requested quantile. The dtype is
                 int64, or object when the tree addresses values beyond the int64 range.
        :raises ValueError: If any quantile is out of range or the digest is empty
        """
        qs = np.atleast_1d(np.asarray(qs, dtype=np.float64))
        for q in qs:
            self._check_quantile(q)
        ranges = self.to_ascending_ranges()
        # ranges are sorted by right boundary, so the last one bounds every answer
        dtype = np.int64 if ranges[-1][1] <= np.iinfo(np.int64).max else object
        return np.array([self._quantile_from_ranges(ranges, q) for q in qs], dtype=dtype)

    def _quantile_from_ranges(self, ranges: List[Tuple[int, int, int]], q: float) -> int:
        target = q * self.observed_count
        cumulative = 0
        for _, right, count in ranges:
            if cumulative > target:
                return right
            cumulative += count
        return ranges[-1][1]

    def _check_quantile(self, q: float) -> None:
        if not 0 <= q <= 1:
            raise ValueError("q must be in the range [0, 1]")
        if self.observed_count == 0:
            raise ValueError("Cannot query quantile from empty digest")

    @staticmethod
    def _check_value(value) -> int:
        if isinstance(value, (bool, np.bool_)):
            raise ValueError(f"value must be a non-negative integer, got {value!r}")
        try:
            value = operator.index(value)
        except TypeError as e:
            raise ValueError(f"value must be a non-negative integer, got {value!r}") from e
        if value < 0:
            raise ValueError(f"value must be a non-negative integer, got {value}")
        return value

    def _threshold(self) -> int:
        return floor(self.observed_count / self.compression_factor)

    def _get(self, node: int) -> int:
        return self.node_counts.get(node, 0)

    def node_count(self) -> int:
        """Return the number of stored nodes. Space is O(compression_factor)."""
        return len(self.node_counts)

    def __len__(self) -> int:
        """Return the number of values observed."""
        return self.observed_count

    def __repr__(self) -> str:
        return (
            f"QDigest(compression_factor={self.compression_factor}, observed_count={self.observed_count}, "
            f"log_capacity={self.log_capacity}, nodes={len(self.node_counts)})"
        )
