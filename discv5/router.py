#!/usr/bin/env python
# -*- codeing:utf-8 -*-
"""In-process message delivery between the simulated peers.

The router stands for the network. It resolves one request/response
exchange synchronously, drops a share of the exchanges to model churn
and accounts the traffic of every peer.
"""

__author__ = "XiaoHuiHui"

import logging
import random
from collections import defaultdict
from typing import TYPE_CHECKING

from enr.datatypes import ENR

from .messages import Message, size_of

if TYPE_CHECKING:
    from .node import Node

logger = logging.getLogger("discv5.router")


class Router:
    """A class represents the simulated network."""
    def __init__(self, rnd: random.Random, churn_pcts: int = 0) -> None:
        self.rnd = rnd
        self.churn_pcts = churn_pcts
        self.nodes: dict[bytes, "Node"] = {}
        self.traffic_stats: defaultdict[bytes, int] = defaultdict(int)
        self.message_stats: defaultdict[bytes, int] = defaultdict(int)

    def __len__(self) -> int:
        return len(self.nodes)

    def register(self, node: "Node") -> None:
        self.nodes[node.enr.node_id] = node

    def _account(self, node_id: bytes, size: int) -> None:
        self.traffic_stats[node_id] += size
        self.message_stats[node_id] += 1

    def is_dropped(self) -> bool:
        """Whether the recipient is considered offline for the current
        exchange. Only draws from the shared generator when churn is
        enabled.
        """
        if self.churn_pcts <= 0:
            return False
        return self.rnd.randrange(100) < self.churn_pcts

    def route(
        self,
        from_node: "Node",
        to_record: ENR,
        message: Message
    ) -> list[Message]:
        """Deliver a request and collect the responses of the recipient.

        The request is accounted on both ends even when it gets lost,
        each response likewise.

        :param Node from_node: The sender.
        :param ENR to_record: Record of the recipient.
        :param Message message: The request.
        :return list[Message]: The responses, empty if the recipient is
            unknown or offline.
        """
        size = size_of(message)
        self._account(from_node.enr.node_id, size)
        self._account(to_record.node_id, size)
        recipient = self.nodes.get(to_record.node_id)
        if recipient is None:
            logger.debug(f"{to_record} is unknown, {message!r} is lost.")
            return []
        if self.is_dropped():
            logger.debug(f"{to_record} is offline, {message!r} is lost.")
            return []
        responses = recipient.handle_request(message, from_node.enr)
        for response in responses:
            size = size_of(response)
            self._account(to_record.node_id, size)
            self._account(from_node.enr.node_id, size)
        return responses

    def traffic(self, node: "Node") -> int:
        return self.traffic_stats[node.enr.node_id]

    def messages(self, node: "Node") -> int:
        return self.message_stats[node.enr.node_id]

    def reset(self, node: "Node") -> None:
        self.traffic_stats.pop(node.enr.node_id, None)
        self.message_stats.pop(node.enr.node_id, None)
