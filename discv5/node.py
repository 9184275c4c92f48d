#!/usr/bin/env python
# -*- codeing:utf-8 -*-
"""A simulated peer of the node discovery protocol.

A node owns its record table, its advertisement storage and a queue of
tasks which are stepped once per simulation round. Requests are sent by
queueing round trip tasks, their answers come back through callbacks.
"""

__author__ = "XiaoHuiHui"

import logging
import random
import typing
from typing import Callable, Optional

from eth_keys.datatypes import PrivateKey

from core.task import NodeUpdateTask, RoundTripMessageTask, Task
from enr.datatypes import ENR

from .messages import (AVERAGE_TICKET_SIZE, FindNodeMessage, Message,
                       NodesMessage, PingMessage, PongMessage,
                       RegTopicMessage, TicketMessage, TopicQueryMessage)
from .router import Router
from .table import K_BUCKET, NUM_BUCKETS, KademliaTable
from .topic import TopicTable

logger = logging.getLogger("discv5.node")

TOPIC_ADS_CAPACITY = 100
AD_LIFETIME_STEPS = 50


class Node:
    """
    """
    def __init__(
        self,
        enr: ENR,
        private_key: Optional[PrivateKey],
        rnd: random.Random,
        router: Router,
        bucket_size: int = K_BUCKET,
        num_buckets: int = NUM_BUCKETS,
        topic_capacity: int = TOPIC_ADS_CAPACITY,
        ad_lifetime: int = AD_LIFETIME_STEPS
    ) -> None:
        self.enr = enr
        self.private_key = private_key
        self.rnd = rnd
        self.router = router
        self.table = KademliaTable(enr, bucket_size, num_buckets)
        self.topic_table = TopicTable(topic_capacity, ad_lifetime)
        self.tasks: list[Task] = []
        self.current_step = 0

    def __repr__(self) -> str:
        return f"Node[{self.enr.to_id()}]"

    def step(self) -> None:
        """Step every queued task once. Tasks queued while stepping are
        kept for the next round, finished tasks are dropped.
        """
        current = self.tasks
        self.tasks = []
        for task in current:
            task.step()
        self.tasks = [task for task in current if not task.is_over()] \
            + self.tasks
        self.current_step += 1

    def update_node(self, enr: ENR) -> None:
        if enr.node_id == self.enr.node_id:
            return
        self.table.put(enr, self.ping)

    def update_node_later(self, enr: ENR) -> None:
        """Queue the merge of a record. A merge of the same node already
        queued is kept, it takes the newer of both records.
        """
        if enr.node_id == self.enr.node_id:
            return
        task = NodeUpdateTask(enr, self)
        for queued in self.tasks:
            if isinstance(queued, NodeUpdateTask) and queued == task:
                if queued.enr.seq < enr.seq:
                    queued.enr = enr
                return
        self.tasks.append(task)

    def ping(self, enr: ENR, cb: Callable[[bool], None]) -> None:
        """Check whether a peer is alive. A pong announcing a newer
        record than the known one triggers a request for that record.
        """
        def on_answer(messages: list[Message]) -> None:
            answers = self.handle(messages, enr)
            alive = False
            for answer in answers:
                if not isinstance(answer, PongMessage):
                    continue
                alive = True
                known = self.table.nodes.get(enr.node_id, enr)
                if answer.enr_seq > known.seq:
                    self.request_record(enr)
            cb(alive)

        self.tasks.append(
            RoundTripMessageTask(
                self, enr, PingMessage(self.enr.seq), on_answer
            )
        )

    def request_record(self, enr: ENR) -> None:
        """Fetch the current record of a peer, a FindNode for its own id
        returns it first.
        """
        def merge(records: list[ENR]) -> None:
            for record in records:
                if record.node_id == enr.node_id:
                    logger.debug(
                        f"{self} got record {record.seq} of {record}."
                    )
                    self.update_node_later(record)

        self.find_nodes(enr, enr.node_id, merge)

    def _request_records(
        self,
        enr: ENR,
        message: Message,
        cb: Callable[[list[ENR]], None]
    ) -> None:
        def on_answer(messages: list[Message]) -> None:
            records: list[ENR] = []
            for answer in self.handle(messages, enr):
                if isinstance(answer, NodesMessage):
                    records += answer.records
            cb(records)

        self.tasks.append(RoundTripMessageTask(self, enr, message, on_answer))

    def find_nodes(
        self,
        enr: ENR,
        target: bytes,
        cb: Callable[[list[ENR]], None]
    ) -> None:
        """Ask the given peer for the records closest to the target.

        :param ENR enr: The queried peer.
        :param bytes target: The target id.
        :param Callable cb: Receives the returned records, empty if the
            peer didn't answer.
        """
        self._request_records(enr, FindNodeMessage(target), cb)

    def topic_query(
        self,
        enr: ENR,
        topic: bytes,
        cb: Callable[[list[ENR]], None]
    ) -> None:
        """Ask the given media node for the advertisers of a topic.

        :param ENR enr: The queried media node.
        :param bytes topic: Topic hash.
        :param Callable cb: Receives the advertiser records, empty if
            the media node didn't answer or stores no ad.
        """
        self._request_records(enr, TopicQueryMessage(topic), cb)

    def handle(self, messages: list[Message], sender: ENR) -> list[Message]:
        """Process the responses of a peer. A peer which answered is
        merged into the table.

        :param list[Message] messages: The responses.
        :param ENR sender: Record of the responding peer.
        :return list[Message]: The responses for the caller.
        """
        if len(messages) > 0:
            self.update_node_later(sender)
        logger.debug(f"{self} received {messages} from {sender}.")
        return messages

    def handle_request(self, message: Message, sender: ENR) -> list[Message]:
        """Answer a request of a peer.

        :param Message message: The request.
        :param ENR sender: Record of the requesting peer.
        :return list[Message]: The responses.
        """
        self.update_node_later(sender)
        bucket_size = self.table.kbucket.bucket_size
        match message.TYPE:
            case 0x01:
                return [PongMessage(self.enr.seq)]
            case 0x03:
                message = typing.cast(FindNodeMessage, message)
                if message.target == self.enr.node_id:
                    # Distance zero, own record first.
                    records = [self.enr] + self.table.find_neighbors(
                        message.target, bucket_size - 1
                    )
                else:
                    records = self.table.find_neighbors(
                        message.target, bucket_size
                    )
                return [NodesMessage(records)]
            case 0x05:
                message = typing.cast(RegTopicMessage, message)
                wait_steps = self.topic_table.register(
                    message.topic, message.enr, self.current_step
                )
                ticket = b"" if wait_steps == 0 else bytes(AVERAGE_TICKET_SIZE)
                return [TicketMessage(ticket, wait_steps)]
            case 0x07:
                message = typing.cast(TopicQueryMessage, message)
                ads = self.topic_table.get_ads(
                    message.topic, self.current_step
                )
                return [NodesMessage(ads[:bucket_size])]
            case _:
                logger.warning(f"{self} can't answer {message!r}, ignored.")
                return []

    def reset_all(self, keep_ads: bool = False) -> None:
        """Drop the queued tasks and the traffic stats.

        :param bool keep_ads: Keep the stored topic ads, a following
            search can then find them.
        """
        self.tasks.clear()
        if not keep_ads:
            self.topic_table.clear()
        self.router.reset(self)
