#!/usr/bin/env python
# -*- codeing:utf-8 -*-
"""Search of peers serving a topic or carrying a record attribute.

Topic search asks the media nodes of a topic, the ones closest to the
topic hash, for the ads they store. Attribute search walks the network
with lookups of random ids and keeps the records carrying the wanted
key/value pair.
"""

__author__ = "XiaoHuiHui"

import logging
import random
from typing import TYPE_CHECKING, Any, Callable, Optional

from enr.datatypes import ENR

from .lookup import IdSearchTask
from .task import ParallelQueueTask, ProducerTask

if TYPE_CHECKING:
    from discv5.node import Node

logger = logging.getLogger("core.search")


class TopicQueryTask(ProducerTask[list[ENR]]):
    """Asks one media node for the advertisers of a topic."""
    def __init__(self, node: "Node", media: ENR, topic_hash: bytes) -> None:
        self.node = node
        self.media = media
        self.topic_hash = topic_hash
        self.placed = False
        self.finished = False
        self.result: list[ENR] = []

    def __repr__(self) -> str:
        return (
            f"TopicQueryTask[Node={self.node.enr.to_id()}, "
            f"media={self.media.to_id()}]"
        )

    def step(self) -> None:
        if self.placed:
            return
        self.placed = True
        self.node.topic_query(self.media, self.topic_hash, self._on_ads)

    def _on_ads(self, records: list[ENR]) -> None:
        self.result = records
        self.finished = True

    def is_over(self) -> bool:
        return self.finished

    def get_result(self) -> list[ENR]:
        self.check_over()
        return list(self.result)


class TopicSearchTask(ProducerTask[list[ENR]]):
    """Searches media nodes for a topic, then queries them in the order
    the search returned them, `parallelism` at once. Over when `require`
    distinct advertisers are found or every media node answered.
    """
    def __init__(
        self,
        node: "Node",
        media_search_task: ProducerTask[list[ENR]],
        topic_hash: bytes,
        require: int,
        parallelism: int
    ) -> None:
        if require <= 0:
            raise ValueError(f"Require must be positive, got {require}.")
        self.node = node
        self.media_search_task = media_search_task
        self.topic_hash = topic_hash
        self.require = require
        self.parallelism = parallelism
        self.queries: list[TopicQueryTask] = []
        self.runner: Optional[ParallelQueueTask] = None
        self.found: dict[bytes, ENR] = {}

    def step(self) -> None:
        if self.is_over():
            return
        if not self.media_search_task.is_over():
            self.media_search_task.step()
            return
        if self.runner is None:
            media = self.media_search_task.get_result()
            logger.debug(
                f"Node {self.node.enr.to_id()} queries {len(media)} media "
                f"for {self.topic_hash.hex()[:7]}."
            )
            self.queries = [
                TopicQueryTask(self.node, enr, self.topic_hash)
                for enr in media
            ]
            self.runner = ParallelQueueTask(self.queries, self.parallelism)
        self.runner.step()
        for query in self.queries:
            if not query.is_over():
                continue
            for enr in query.get_result():
                if enr.node_id != self.node.enr.node_id:
                    self.found.setdefault(enr.node_id, enr)

    def is_over(self) -> bool:
        if len(self.found) >= self.require:
            return True
        return self.runner is not None and self.runner.is_over()

    def get_result(self) -> list[ENR]:
        self.check_over()
        return list(self.found.values())


class AttributeSearchTask(ProducerTask[list[ENR]]):
    """Looks for `require` records carrying `key` = `value`.

    The records of the node table are checked first, then lookups of
    random ids are run one after another and their results checked,
    until enough records are found or `max_lookups` lookups are done.
    """
    def __init__(
        self,
        node: "Node",
        key: str,
        value: Any,
        require: int,
        start_fn: Callable[[], ENR],
        alpha: int,
        rnd: random.Random,
        max_lookups: int
    ) -> None:
        if require <= 0:
            raise ValueError(f"Require must be positive, got {require}.")
        self.node = node
        self.key = key
        self.value = value
        self.require = require
        self.start_fn = start_fn
        self.alpha = alpha
        self.rnd = rnd
        self.max_lookups = max_lookups
        self.lookup: Optional[IdSearchTask] = None
        self.lookups = 0
        self.queries = 0
        self.found: dict[bytes, ENR] = {}
        self._collect(node.table.find_all())

    def __repr__(self) -> str:
        return (
            f"AttributeSearchTask[Node={self.node.enr.to_id()}, "
            f"{self.key}={self.value!r}]"
        )

    def _collect(self, records: list[ENR]) -> None:
        for enr in records:
            if enr.node_id == self.node.enr.node_id:
                continue
            if enr.extra.get(self.key) == self.value:
                self.found.setdefault(enr.node_id, enr)

    def step(self) -> None:
        if self.is_over():
            return
        if self.lookup is None:
            target = self.rnd.getrandbits(256).to_bytes(32, "big")
            self.lookup = IdSearchTask(
                self.node,
                target,
                self.start_fn(),
                self.alpha,
                self.rnd,
                self.start_fn
            )
            self.lookups += 1
        self.lookup.step()
        if self.lookup.is_over():
            self._collect(self.lookup.get_result())
            self.queries += self.lookup.total_queries
            self.lookup = None
            logger.debug(
                f"{self} found {len(self.found)} records after "
                f"{self.lookups} lookups."
            )

    def is_over(self) -> bool:
        if len(self.found) >= self.require:
            return True
        return self.lookup is None and self.lookups >= self.max_lookups

    def get_result(self) -> list[ENR]:
        self.check_over()
        return list(self.found.values())
