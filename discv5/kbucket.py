#!/usr/bin/env python
# -*- codeing:utf-8 -*-
"""A implementation of the Kademlia routing table.

Node ids are 32 bytes hashes, the table keeps one bucket per possible
logarithmic distance to the center id. Each bucket holds at most
`bucket_size` ids ordered from the most to the least recently seen, and
owns a replacement cache used to refill the bucket when an entry goes
away.

See: https://github.com/ethereum/devp2p/blob/master/discv5/discv5-theory.md
"""

__author__ = "XiaoHuiHui"

import functools
import itertools
import logging
from collections import deque
from typing import Optional

logger = logging.getLogger("discv5.kbucket")


def compute_distance(a: bytes, b: bytes) -> int:
    """XOR distance of two ids read as big-endian integers.

    :param bytes a: First id.
    :param bytes b: Second id.
    :return int: Distance, zero for equal ids.
    """
    return int.from_bytes(a, "big") ^ int.from_bytes(b, "big")


def compute_log_distance(a: bytes, b: bytes) -> int:
    """Bit length of the XOR distance, in [1, 256] for 32 bytes ids.

    :raise ValueError: If the ids are identical.
    """
    if a == b:
        raise ValueError(f"Log distance of identical ids {a.hex()[:7]}.")
    return compute_distance(a, b).bit_length()


class KademliaRoutingTable:
    """A Kademlia routing table over node ids."""

    def __init__(self, center_node_id: bytes, bucket_size: int,
            num_buckets: int) -> None:
        self.center_node_id = center_node_id
        self.bucket_size = bucket_size
        self.buckets: list[deque[bytes]] = [
            deque(maxlen=bucket_size)
            for _ in range(num_buckets)
        ]
        self.replacement_caches: list[deque[bytes]] = [
            deque()
            for _ in range(num_buckets)
        ]

    def __contains__(self, node_id: bytes) -> bool:
        if node_id == self.center_node_id:
            return False
        _, bucket, replacement_cache = self.bucket_of(node_id)
        return node_id in bucket or node_id in replacement_cache

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self.buckets)

    def bucket_of(self, node_id: bytes) -> tuple[int, deque, deque]:
        """The logarithmic distance between the node id and the center
        id selects the bucket. Ids at distances beyond the last bucket
        share the last one.

        :param bytes node_id: The given node id.
        :return int: The bucket index.
        :return Deque: The bucket object.
        :return Deque: The replacement cache object.
        """
        index = compute_log_distance(self.center_node_id, node_id) - 1
        index = min(index, len(self.buckets) - 1)
        return index, self.buckets[index], self.replacement_caches[index]

    def is_in_bucket(self, node_id: bytes) -> bool:
        _, bucket, _ = self.bucket_of(node_id)
        return node_id in bucket

    def update(self, node_id: bytes) -> Optional[bytes]:
        """Insert a node into the routing table or move it to the top if
        already present.

        If the bucket is already full, the node id is put on top of the
        replacement cache and the least recently seen node of the bucket
        is returned as an eviction candidate. Otherwise, the return value
        is `None`.

        :param bytes node_id: The id of the node to be added.
        :return bytes: Eviction candidate if exists.
        """
        if node_id == self.center_node_id:
            raise ValueError("Cannot insert center node into routing table.")
        index, bucket, replacement_cache = self.bucket_of(node_id)
        if node_id in bucket:
            bucket.remove(node_id)
            bucket.appendleft(node_id)
            return None
        if len(bucket) < self.bucket_size:
            logger.debug(f"Adding {node_id.hex()[:7]} to bucket {index}.")
            try:
                replacement_cache.remove(node_id)
            except ValueError:
                pass
            bucket.appendleft(node_id)
            return None
        try:
            replacement_cache.remove(node_id)
        except ValueError:
            logger.debug(
                f"Adding {node_id.hex()[:7]} to replacement cache of "
                f"bucket {index}."
            )
        replacement_cache.appendleft(node_id)
        return bucket[-1]

    def remove(self, node_id: bytes) -> Optional[bytes]:
        """Remove a node from the routing table if it is present.

        If possible, the node is replaced with the newest entry in the
        replacement cache.

        :param bytes node_id: The id of the node to be removed.
        :return bytes: The id promoted from the replacement cache.
        """
        index, bucket, replacement_cache = self.bucket_of(node_id)
        promoted = None
        if node_id in bucket:
            bucket.remove(node_id)
            if len(replacement_cache) > 0:
                promoted = replacement_cache.popleft()
                logger.debug(
                    f"Replacing {node_id.hex()[:7]} from bucket {index} "
                    f"with {promoted.hex()[:7]} from replacement cache."
                )
                bucket.append(promoted)
        elif node_id in replacement_cache:
            replacement_cache.remove(node_id)
        else:
            logger.debug(
                f"Not removing {node_id.hex()[:7]} as it is neither present "
                "in the bucket nor the replacement cache."
            )
        return promoted

    def list_nodes_around(self, reference_node_id: bytes) -> list[bytes]:
        """All nodes of the buckets ordered by distance to a given
        reference.

        :param bytes reference_node_id: The given reference.
        :return list[bytes]: All nodes in the buckets.
        """
        all_node_ids = itertools.chain(*self.buckets)
        distance_to_reference = functools.partial(
            compute_distance,
            reference_node_id
        )
        return sorted(all_node_ids, key=distance_to_reference)

    def list_all(self) -> list[bytes]:
        return list(itertools.chain(*self.buckets))
