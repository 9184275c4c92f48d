#!/usr/bin/env python
# -*- codeing:utf-8 -*-
"""A simulated implementation of Node Discovery Protocol v5.

Node Discovery is a system for finding other participants in a
peer-to-peer network. The design is loosely inspired by the Kademlia
DHT, the DHT stores and relays 'node records'. Besides sampling the set
of live participants by walking the DHT, v5 includes a facility for
registering 'topic advertisements' on other nodes, which can be queried
to find nodes providing a service.

The peers here never touch a socket: a router hands the messages over
and every peer advances one step per simulation round.

See: https://github.com/ethereum/devp2p/blob/master/discv5/discv5.md
"""

__author__ = "XiaoHuiHui"
__version__ = "1.0"

import logging
from logging import Formatter, StreamHandler

from .kbucket import compute_distance, compute_log_distance
from .messages import (FindNodeMessage, NodesMessage, PingMessage,
                       PongMessage, RegTopicMessage, TicketMessage,
                       TopicQueryMessage)
from .table import K_BUCKET, KademliaTable
from .topic import TopicTable
from .router import Router
from .node import Node

DEBUG = False

sh = StreamHandler()
fmt = Formatter("%(asctime)s [%(name)s][%(levelname)s] %(message)s")
sh.setFormatter(fmt)
sh.setLevel(logging.DEBUG if DEBUG else logging.INFO)

loggers = [
    logging.getLogger("discv5.kbucket"),
    logging.getLogger("discv5.node"),
    logging.getLogger("discv5.router"),
    logging.getLogger("discv5.table"),
    logging.getLogger("discv5.topic")
]

for logger in loggers:
    logger.addHandler(sh)

__all__ = [
    "compute_distance",
    "compute_log_distance",
    "FindNodeMessage",
    "NodesMessage",
    "PingMessage",
    "PongMessage",
    "RegTopicMessage",
    "TicketMessage",
    "TopicQueryMessage",
    "K_BUCKET",
    "KademliaTable",
    "TopicTable",
    "Router",
    "Node"
]
