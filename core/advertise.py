#!/usr/bin/env python
# -*- codeing:utf-8 -*-
"""Topic advertisement.

An advertiser asks a media node to store its ad with a RegTopic request.
The media node answers with a ticket: a wait time of zero means the ad
is placed, a positive one asks the advertiser to come back later with
the ticket. The advertiser waits as long as the wait time stays within
its retry budget and gives up otherwise.

See: https://github.com/ethereum/devp2p/blob/master/discv5/discv5-theory.md
"""

__author__ = "XiaoHuiHui"

import logging
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

from discv5.messages import Message, RegTopicMessage, TicketMessage
from enr.datatypes import ENR

from .task import (ParallelQueueProducerTask, ProducerTask,
                   RoundTripMessageTask, Task)

if TYPE_CHECKING:
    from discv5.node import Node

logger = logging.getLogger("core.advertise")


class AdvertiseState(Enum):
    ACTIVE = "active"
    BACKOFF = "backoff"
    DONE = "done"


class AdvertiseOnMediaTask(ProducerTask[bool]):
    """Places an ad on one media node, the result tells whether the ad
    was placed.
    """
    def __init__(
        self,
        node: "Node",
        media: ENR,
        topic_hash: bytes,
        ad_retry_steps: int
    ) -> None:
        self.node = node
        self.media = media
        self.topic_hash = topic_hash
        self.ad_retry_steps = ad_retry_steps
        self.finished = False
        self.need_retry_in = 0
        self.result = False
        self.retrying = False
        self.in_flight = False
        self.attempts = 0

    def __repr__(self) -> str:
        return (
            f"AdvertiseOnMediaTask[Node={self.node.enr.to_id()}, "
            f"media={self.media.to_id()}]"
        )

    @property
    def state(self) -> AdvertiseState:
        if self.finished:
            return AdvertiseState.DONE
        if self.need_retry_in > 0:
            return AdvertiseState.BACKOFF
        return AdvertiseState.ACTIVE

    def step(self) -> None:
        if self.finished:
            return
        if self.need_retry_in > 0:
            self.need_retry_in -= 1
            return
        if self.in_flight:
            return
        self._place_task()

    def _place_task(self) -> None:
        if self.retrying:
            ticket = bytes(TicketMessage.average_ticket_size())
        else:
            ticket = b""
        self.in_flight = True
        self.attempts += 1
        self.node.tasks.append(
            RoundTripMessageTask(
                self.node,
                self.media,
                RegTopicMessage(self.topic_hash, self.node.enr, ticket),
                self._on_answer
            )
        )

    def _on_answer(self, messages: list[Message]) -> None:
        self.in_flight = False
        answers = self.node.handle(messages, self.media)
        self._handle_answer(
            [answer for answer in answers if isinstance(answer, TicketMessage)]
        )

    def _handle_answer(self, messages: list[TicketMessage]) -> None:
        if len(messages) == 0:
            self._place_task()
            return
        message = messages[0]
        if message.wait_steps == 0:
            self.finished = True
            self.result = True
            logger.debug(f"{self} placed the ad.")
        elif message.wait_steps <= self.ad_retry_steps:
            self.need_retry_in = message.wait_steps
            self.retrying = True
        else:
            self.finished = True
            self.result = False
            logger.debug(
                f"{self} gave up, asked to wait {message.wait_steps} steps."
            )

    def is_over(self) -> bool:
        return self.finished

    def get_result(self) -> bool:
        self.check_over()
        return self.result


class TopicAdvertiseTask(Task):
    """Searches media nodes for a topic, then advertises on all of them
    with at most `parallelism` advertisements in progress at once. The
    callback gets the outcome of every media node in the order the
    search returned them.
    """
    def __init__(
        self,
        node: "Node",
        media_search_task: ProducerTask[list[ENR]],
        topic_hash: bytes,
        ad_retry_steps: int,
        parallelism: int,
        cb: Callable[[list[bool]], None]
    ) -> None:
        self.node = node
        self.media_search_task = media_search_task
        self.topic_hash = topic_hash
        self.ad_retry_steps = ad_retry_steps
        self.parallelism = parallelism
        self.cb = cb
        self.advertise_task: Optional[ProducerTask[list[bool]]] = None
        self.cb_done = False

    def step(self) -> None:
        if self.cb_done:
            return
        if not self.media_search_task.is_over():
            self.media_search_task.step()
            return
        if self.advertise_task is None:
            media = self.media_search_task.get_result()
            logger.debug(
                f"Node {self.node.enr.to_id()} found {len(media)} media for "
                f"{self.topic_hash.hex()[:7]}."
            )
            self.advertise_task = ParallelQueueProducerTask(
                [
                    AdvertiseOnMediaTask(
                        self.node, enr, self.topic_hash, self.ad_retry_steps
                    )
                    for enr in media
                ],
                self.parallelism
            )
        if not self.advertise_task.is_over():
            self.advertise_task.step()
        if self.advertise_task.is_over():
            self.cb_done = True
            self.cb(self.advertise_task.get_result())

    def is_over(self) -> bool:
        return (
            self.media_search_task.is_over()
            and self.advertise_task is not None
            and self.advertise_task.is_over()
        )
