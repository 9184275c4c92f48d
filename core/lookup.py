#!/usr/bin/env python
# -*- codeing:utf-8 -*-
"""Iterative node lookup.

A lookup walks the network toward a target id. The first step asks a
seed peer for the records closest to the target. From then on, rounds
of `alpha` queries are sent to the closest known records, the answers of
a round are merged into the next set of candidates. The lookup is over
when a round brings no record closer to the target than the best one
known before.
"""

__author__ = "XiaoHuiHui"

import logging
import random
from collections import deque
from typing import TYPE_CHECKING, Callable, Optional

from discv5.kbucket import compute_distance
from discv5.table import KademliaTable
from enr.datatypes import ENR

from .task import ParallelProducerTask, ProducerTask

if TYPE_CHECKING:
    from discv5.node import Node

logger = logging.getLogger("core.lookup")


class IdSearchTask(ProducerTask[list[ENR]]):
    """Lookup of a target id started from one seed record.

    When the seed doesn't answer, the lookup is restarted from another
    seed given by `candidate_replace_on_fail`. The restarted lookup
    replaces this one, which only forwards to it from then on.
    """
    def __init__(
        self,
        node: "Node",
        target: bytes,
        start: ENR,
        alpha: int,
        rnd: random.Random,
        candidate_replace_on_fail: Callable[[], ENR],
        bucket_size: Optional[int] = None
    ) -> None:
        if alpha <= 0:
            raise ValueError(f"Alpha must be positive, got {alpha}.")
        self.node = node
        self.target = target
        self.start = start
        self.alpha = alpha
        self.rnd = rnd
        self.candidate_replace_on_fail = candidate_replace_on_fail
        if bucket_size is None:
            bucket_size = node.table.kbucket.bucket_size
        self.bucket_size = bucket_size
        self.replacement: Optional[IdSearchTask] = None
        self.finished = False
        self.first_step_over = False
        self.first_cb_placed = False
        self.candidates: deque[ENR] = deque()
        self.round_set: list[ENR] = []
        self.batches: list[list[ENR]] = []
        self.pending = 0
        self.best_distance: Optional[int] = None
        self.result: list[ENR] = []
        self.rounds = 0
        self.queries = 0

    def __repr__(self) -> str:
        return (
            f"IdSearchTask[Node={self.node.enr.to_id()}, "
            f"id={self.target.hex()[:7]}, start={self.start.to_id()}]"
        )

    def _active(self) -> "IdSearchTask":
        """The last task of the replacement chain, the one doing the work.
        Walked iteratively, the chain grows by one per silent seed.
        """
        task = self
        while task.replacement is not None:
            task = task.replacement
        return task

    def step(self) -> None:
        active = self._active()
        if active is not self:
            active.step()
            return
        if self.finished:
            return

        # First step could fail
        if not self.first_step_over:
            if not self.first_cb_placed:
                self.first_cb_placed = True
                self.queries += 1
                self.node.find_nodes(
                    self.start, self.target, self._first_step_cb
                )
            return

        while (
            self.pending + len(self.batches) < self.alpha
            and len(self.candidates) > 0
        ):
            self.pending += 1
            self.queries += 1
            self.node.find_nodes(
                self.candidates.popleft(), self.target, self._second_step_cb
            )
        if self.pending == 0 and len(self.candidates) == 0:
            self._finish_stalled()

    def _without_self(self, records: list[ENR]) -> list[ENR]:
        return [
            enr for enr in records if enr.node_id != self.node.enr.node_id
        ]

    def _distance(self, enr: ENR) -> int:
        return compute_distance(self.target, enr.node_id)

    def _first_step_cb(self, records: list[ENR]) -> None:
        records = self._without_self(records)
        if len(records) == 0:
            start = self.candidate_replace_on_fail()
            logger.debug(
                f"{self} got no answer from the seed, restarting from "
                f"{start}."
            )
            self.replacement = IdSearchTask(
                self.node,
                self.target,
                start,
                self.alpha,
                self.rnd,
                self.candidate_replace_on_fail,
                self.bucket_size
            )
        else:
            shuffled = list(records)
            self.rnd.shuffle(shuffled)
            self.candidates.extend(shuffled)
            self.round_set = records
            self.best_distance = min(self._distance(enr) for enr in records)
        self.first_step_over = True

    def _second_step_cb(self, records: list[ENR]) -> None:
        self.pending -= 1
        records = self._without_self(records)
        if len(records) > 0:
            self.batches.append(records)
        if len(self.batches) == self.alpha:
            self._merge_round()

    def _merge_round(self) -> None:
        merged = [enr for batch in self.batches for enr in batch]
        self.batches = []
        self.rounds += 1
        closest = KademliaTable.filter_neighborhood(
            self.target, merged, self.bucket_size
        )
        distance = self._distance(closest[0])
        assert self.best_distance is not None
        if distance >= self.best_distance:
            logger.debug(
                f"{self} is over after {self.rounds} rounds and "
                f"{self.queries} queries."
            )
            self._finish(closest)
            return
        self.best_distance = distance
        self.round_set = closest
        self.candidates = deque(closest)

    def _finish_stalled(self) -> None:
        merged = self.round_set + [
            enr for batch in self.batches for enr in batch
        ]
        logger.warning(
            f"{self} ran out of candidates with {len(self.batches)}/"
            f"{self.alpha} answers in round {self.rounds + 1}, finishing "
            "with the known records."
        )
        self.batches = []
        self._finish(
            KademliaTable.filter_neighborhood(
                self.target, merged, self.bucket_size
            )
        )

    def _finish(self, result: list[ENR]) -> None:
        self.result = result
        self.candidates = deque(result)
        self.finished = True

    @property
    def total_queries(self) -> int:
        total = 0
        task: Optional[IdSearchTask] = self
        while task is not None:
            total += task.queries
            task = task.replacement
        return total

    def is_over(self) -> bool:
        return self._active().finished

    def get_result(self) -> list[ENR]:
        self.check_over()
        return list(self._active().result)


class ParallelIdSearchTask(ProducerTask[list[ENR]]):
    """Runs `parallelism` independent lookups of the same target from
    seeds picked by `start_fn` and keeps the `radius` closest records of
    all of their results.
    """
    def __init__(
        self,
        node: "Node",
        target: bytes,
        start_fn: Callable[[], ENR],
        parallelism: int,
        radius: int,
        rnd: random.Random,
        alpha: Optional[int] = None
    ) -> None:
        if parallelism <= 0:
            raise ValueError(
                f"Parallelism must be positive, got {parallelism}."
            )
        self.node = node
        self.target = target
        self.radius = radius
        starts = [start_fn() for _ in range(parallelism)]
        self.searches = [
            IdSearchTask(
                node,
                target,
                start,
                parallelism if alpha is None else alpha,
                rnd,
                start_fn
            )
            for start in starts
        ]
        self.delegate = ParallelProducerTask(self.searches)

    def step(self) -> None:
        self.delegate.step()

    def is_over(self) -> bool:
        return self.delegate.is_over()

    def get_result(self) -> list[ENR]:
        results = self.delegate.get_result()
        return KademliaTable.filter_neighborhood(
            self.target,
            [enr for result in results for enr in result],
            self.radius
        )

    @property
    def queries(self) -> int:
        return sum(search.total_queries for search in self.searches)
