#!/usr/bin/env python
# -*- codeing:utf-8 -*-
"""Statistics gathered from the simulated peers.
"""

__author__ = "XiaoHuiHui"

from typing import Sequence

import numpy as np

from discv5.node import Node
from discv5.table import KademliaTable


def calc_traffic(node: Node) -> int:
    return node.router.traffic(node)


def calc_messages(node: Node) -> int:
    return node.router.messages(node)


def calc_kademlia_peers(table: KademliaTable) -> int:
    return len(table)


def gather_traffic_stats(peers: list[Node]) -> list[int]:
    return sorted(calc_traffic(peer) for peer in peers)


def percentile(values: Sequence[int], pct: int) -> int:
    """Nearest-rank percentile of the values.

    :param Sequence[int] values: The values.
    :param int pct: Percentile in (0, 100].
    :return int: The value, 0 for no values.
    """
    if pct <= 0 or pct > 100:
        raise ValueError(f"Percentile must be in (0, 100], got {pct}.")
    if len(values) == 0:
        return 0
    return int(np.percentile(values, pct, method="inverted_cdf"))


def format_table(rows: list[list[str]], header: bool = True) -> str:
    """Align the columns of the rows for printing.

    :param list[list[str]] rows: Rows of cells.
    :param bool header: Whether the first row is a header, it is then
        underlined.
    :return str: The formatted table.
    """
    if len(rows) == 0:
        return ""
    columns = max(len(row) for row in rows)
    widths = [0] * columns
    for row in rows:
        for index, cell in enumerate(row):
            widths[index] = max(widths[index], len(cell))
    lines = [
        "  ".join(
            cell.ljust(widths[index]) for index, cell in enumerate(row)
        ).rstrip()
        for row in rows
    ]
    if header:
        lines.insert(1, "  ".join("-" * width for width in widths))
    return "\n".join(lines)


def format_kademlia_stats(peers: list[Node]) -> str:
    rows = [["Peer #", "Stored nodes"]]
    for index, peer in enumerate(peers):
        rows.append([str(index), str(calc_kademlia_peers(peer.table))])
    return format_table(rows)
