#!/usr/bin/env python
# -*- codeing:utf-8 -*-
"""A implementation of the node record table of a simulated peer.

A thin layer over the Kademlia routing table which keeps the records
behind the node ids and decides evictions through liveness checks.
"""

__author__ = "XiaoHuiHui"

import logging
from typing import Callable, Iterable, Optional

from enr.datatypes import ENR

from .kbucket import KademliaRoutingTable, compute_distance

logger = logging.getLogger("discv5.table")

K_BUCKET = 16
NUM_BUCKETS = 256

PingFn = Callable[[ENR, Callable[[bool], None]], None]


class KademliaTable:
    """A class represents the table of known node records."""
    def __init__(
        self,
        home: ENR,
        bucket_size: int = K_BUCKET,
        num_buckets: int = NUM_BUCKETS
    ) -> None:
        self.home = home
        self.kbucket = KademliaRoutingTable(
            home.node_id, bucket_size, num_buckets
        )
        # Records of bucket entries and replacement cache entries.
        self.nodes: dict[bytes, ENR] = {}

    def __len__(self) -> int:
        return len(self.kbucket)

    def __contains__(self, enr: ENR) -> bool:
        if enr.node_id == self.home.node_id:
            return False
        return self.kbucket.is_in_bucket(enr.node_id)

    def _check(self, node_id: bytes) -> None:
        assert (
            (node_id in self.kbucket and node_id in self.nodes) or
            (node_id not in self.kbucket and node_id not in self.nodes)
        ), f"Incnsistency: {node_id.hex()[:7]}"

    def put(self, enr: ENR, ping_fn: Optional[PingFn] = None) -> None:
        """Add a node record to the table.

        If the bucket already contains k entries, the least recently
        seen node in the bucket needs to be revalidated by a ping. If no
        reply is received it is considered dead and removed, and the new
        record takes its place. Otherwise the new record waits in the
        replacement cache. Without a `ping_fn` the least recently seen
        entry is considered alive.

        :param ENR enr: The record to be added.
        :param PingFn ping_fn: Liveness check of the eviction candidate.
        """
        if enr.node_id == self.home.node_id:
            return
        self._check(enr.node_id)
        known = self.nodes.get(enr.node_id)
        if known is None or known.seq < enr.seq:
            self.nodes[enr.node_id] = enr
        candidate_id = self.kbucket.update(enr.node_id)
        if candidate_id is None or ping_fn is None:
            return
        candidate = self.nodes[candidate_id]

        def on_pong(alive: bool) -> None:
            if not self.kbucket.is_in_bucket(candidate_id):
                return
            if alive:
                self.kbucket.update(candidate_id)
            else:
                logger.debug(
                    f"{candidate} did not answer, evicted from the table "
                    f"of {self.home}."
                )
                self.remove(candidate)

        ping_fn(candidate, on_pong)

    def remove(self, enr: ENR) -> None:
        """Remove a record, if possible the freshest entry of the
        replacement cache takes its place.
        """
        if enr.node_id not in self.nodes:
            return
        self._check(enr.node_id)
        self.kbucket.remove(enr.node_id)
        self.nodes.pop(enr.node_id)

    def find_all(self) -> list[ENR]:
        """Get all of records stored in the buckets.

        :return list[ENR]: A list of records.
        """
        return [self.nodes[i] for i in self.kbucket.list_all()]

    def find_neighbors(self, target: bytes, limit: int = K_BUCKET) -> list[ENR]:
        """Get the records closest to the given id.

        :param bytes target: The given id.
        :param int limit: Maximum number of records.
        :return list[ENR]: Records ordered by distance to the target.
        """
        r = [self.nodes[i] for i in self.kbucket.list_nodes_around(target)]
        return r[:limit]

    @staticmethod
    def filter_neighborhood(
        target: bytes,
        candidates: Iterable[ENR],
        count: int
    ) -> list[ENR]:
        """Select the `count` records closest to the target by XOR
        distance. Records sharing a node id are counted once, ties are
        broken by node id.

        :param bytes target: The given id.
        :param Iterable[ENR] candidates: Records to choose from.
        :param int count: Maximum number of records.
        :return list[ENR]: Records ordered by distance to the target.
        """
        unique: dict[bytes, ENR] = {}
        for enr in candidates:
            known = unique.get(enr.node_id)
            if known is None or known.seq < enr.seq:
                unique[enr.node_id] = enr
        ordered = sorted(
            unique.values(),
            key=lambda enr: (compute_distance(target, enr.node_id), enr.node_id)
        )
        return ordered[:count]
