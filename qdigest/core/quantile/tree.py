"""
Addressing for the implicit complete binary tree behind the q-digest.

Nodes use the 1-indexed heap convention: the root is 1 and the children of
``n`` are ``2n`` and ``2n + 1``. With a tree of height ``log_capacity`` the
leaf for value ``x`` is ``2**log_capacity + x``.
"""

ROOT = 1


def value_to_leaf(value: int, log_capacity: int) -> int:
    return (1 << log_capacity) + value


def leaf_to_value(node: int, log_capacity: int) -> int:
    return node - (1 << log_capacity)


def is_root(node: int) -> bool:
    return node == ROOT


def is_leaf(node: int, log_capacity: int) -> bool:
    return node >= 1 << log_capacity


def sibling(node: int) -> int:
    return node + 1 if node % 2 == 0 else node - 1


def parent(node: int) -> int:
    return node // 2


def left_child(node: int) -> int:
    return 2 * node


def right_child(node: int) -> int:
    return 2 * node + 1


def range_left(node: int, log_capacity: int) -> int:
    """Smallest value covered by *node*."""
    while not is_leaf(node, log_capacity):
        node = left_child(node)
    return leaf_to_value(node, log_capacity)


def range_right(node: int, log_capacity: int) -> int:
    """Largest value covered by *node*."""
    while not is_leaf(node, log_capacity):
        node = right_child(node)
    return leaf_to_value(node, log_capacity)
