#!/usr/bin/env python
# -*- codeing:utf-8 -*-
"""Steppable tasks of the discovery simulation.

There is no real concurrency in the simulation. Every protocol action is
a task which is advanced by one discrete step at a time by its owner.
One step corresponds to one message leg. A request waiting for its
answer, a peer waiting for a ticket and a lookup walking the network are
all expressed as explicit state consumed step by step.

Answers are handed back through callbacks invoked synchronously within
the step which produced them.
"""

__author__ = "XiaoHuiHui"

import abc
import logging
from abc import ABCMeta
from collections import deque
from typing import TYPE_CHECKING, Callable, Generic, Iterable, TypeVar

from enr.datatypes import ENR

if TYPE_CHECKING:
    from discv5.messages import Message
    from discv5.node import Node

logger = logging.getLogger("core.task")

R = TypeVar("R")


class TaskNotOverError(Exception):
    """An error indicating that the result of a task was queried before
    the task was over.
    """
    pass


class Task(metaclass=ABCMeta):
    """A unit of work advanced by discrete steps.

    `step()` must be a no-op once the task is over and `is_over()` must
    stay true once it became true.
    """

    @abc.abstractmethod
    def step(self) -> None:
        raise NotImplementedError()

    def is_over(self) -> bool:
        return False


class ProducerTask(Task, Generic[R]):
    """A task which produces a result once it is over."""

    @abc.abstractmethod
    def get_result(self) -> R:
        raise NotImplementedError()

    def check_over(self) -> None:
        if not self.is_over():
            raise TaskNotOverError(
                "Task is not over. Query result when the task is over!"
            )


class RecursiveTableVisit(Task):
    """Visits the records of the node table one per step, starting a new
    round over the table once all records of the previous one were
    visited. Never over.
    """
    def __init__(self, node: "Node", peer_fn: Callable[[ENR], None]) -> None:
        self.node = node
        self.peer_fn = peer_fn
        self.peers: deque[ENR] = deque()

    def is_round_over(self) -> bool:
        return len(self.peers) == 0

    def step(self) -> None:
        if self.is_round_over():
            self.peers.extend(self.node.table.find_all())
        # The table could be empty.
        if len(self.peers) == 0:
            return
        self.peer_fn(self.peers.popleft())


class PingTableVisit(Task):
    """Pings the records of the node table one per step and removes the
    ones which don't answer. Never over.
    """
    def __init__(self, node: "Node") -> None:
        self.node = node
        self.peers: deque[ENR] = deque()

    def is_round_over(self) -> bool:
        return len(self.peers) == 0

    def step(self) -> None:
        if self.is_round_over():
            self.peers.extend(self.node.table.find_all())
        if len(self.peers) == 0:
            return
        current = self.peers.popleft()

        def on_pong(alive: bool) -> None:
            if not alive:
                logger.debug(f"{current} is dead, removing it.")
                self.node.table.remove(current)

        self.node.ping(current, on_pong)


class RoundTripMessageTask(Task):
    """Two steps message task:

    1) message is delivered from node to recipient
    2) message is handled on recipient side and result is returned back
    """
    def __init__(
        self,
        node: "Node",
        recipient: ENR,
        message: "Message",
        cb: Callable[[list["Message"]], None]
    ) -> None:
        self.node = node
        self.recipient = recipient
        self.message = message
        self.cb = cb
        self.delivery_done = False
        self.over = False

    def step(self) -> None:
        if self.over:
            return
        if not self.delivery_done:
            self.delivery_done = True
            return
        result = self.node.router.route(self.node, self.recipient, self.message)
        self.over = True
        self.cb(result)

    def is_over(self) -> bool:
        return self.over

    def __repr__(self) -> str:
        return (
            f"RoundTripMessageTask[{self.message!r}, "
            f"{self.node.enr} -> {self.recipient}]"
        )


class NodeUpdateTask(Task):
    """Merges a record into the table of the node within one step."""
    def __init__(self, enr: ENR, node: "Node") -> None:
        self.enr = enr
        self.node = node
        self.done = False

    def step(self) -> None:
        if self.done:
            return
        self.node.update_node(self.enr)
        self.done = True

    def is_over(self) -> bool:
        return self.done

    def __repr__(self) -> str:
        return f"NodeUpdateTask[{self.enr.to_id()}]"

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, NodeUpdateTask):
            return False
        return (
            self.enr.node_id == other.enr.node_id
            and self.node is other.node
            and self.done == other.done
        )

    def __hash__(self) -> int:
        return hash((self.enr.node_id, id(self.node), self.done))


class ImmediateProducer(ProducerTask[R]):
    """Wraps an already known result, over from the beginning."""
    def __init__(self, result: R) -> None:
        self.result = result

    def step(self) -> None:
        pass

    def is_over(self) -> bool:
        return True

    def get_result(self) -> R:
        return self.result


class ParallelTask(Task):
    """Steps all sub-tasks every step, over when all of them are."""
    def __init__(self, sub_tasks: Iterable[Task]) -> None:
        self.sub_tasks = list(sub_tasks)

    def step(self) -> None:
        for task in self.sub_tasks:
            task.step()

    def is_over(self) -> bool:
        return all(task.is_over() for task in self.sub_tasks)


class ParallelQueueTask(Task):
    """Runs sub-tasks with at most `parallelism` of them active at once.

    Every step the active set is refilled from the pending queue in
    submission order, every active task is stepped and the ones which
    are over are dropped.
    """
    def __init__(self, sub_tasks: Iterable[Task], parallelism: int) -> None:
        if parallelism <= 0:
            raise ValueError(
                f"Parallelism must be positive, got {parallelism}."
            )
        self.parallelism = parallelism
        self.pending: deque[Task] = deque(sub_tasks)
        self.current: list[Task] = []

    def step(self) -> None:
        while len(self.current) < self.parallelism and len(self.pending) > 0:
            self.current.append(self.pending.popleft())
        for task in self.current:
            task.step()
        self.current = [task for task in self.current if not task.is_over()]

    def is_over(self) -> bool:
        return len(self.pending) == 0 and len(self.current) == 0


class ParallelProducerTask(ProducerTask[list[R]]):
    def __init__(self, sub_tasks: Iterable[ProducerTask[R]]) -> None:
        self.sub_tasks = list(sub_tasks)
        self.delegate = ParallelTask(self.sub_tasks)

    def step(self) -> None:
        self.delegate.step()

    def is_over(self) -> bool:
        return self.delegate.is_over()

    def get_result(self) -> list[R]:
        self.check_over()
        return [task.get_result() for task in self.sub_tasks]


class ParallelQueueProducerTask(ProducerTask[list[R]]):
    """Results are returned in submission order."""
    def __init__(
        self,
        sub_tasks: Iterable[ProducerTask[R]],
        parallelism: int
    ) -> None:
        self.sub_tasks = list(sub_tasks)
        self.delegate = ParallelQueueTask(self.sub_tasks, parallelism)

    def step(self) -> None:
        self.delegate.step()

    def is_over(self) -> bool:
        return self.delegate.is_over()

    def get_result(self) -> list[R]:
        self.check_over()
        return [task.get_result() for task in self.sub_tasks]
