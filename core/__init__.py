#!/usr/bin/env python
# -*- codeing:utf-8 -*-

"""Core tasks of the discovery simulation.
"""

__author__ = "XiaoHuiHui"
__version__ = "1.0"

import logging
from logging import Formatter, StreamHandler

from .task import (ImmediateProducer, NodeUpdateTask, ParallelProducerTask,
                   ParallelQueueProducerTask, ParallelQueueTask, ParallelTask,
                   PingTableVisit, ProducerTask, RecursiveTableVisit,
                   RoundTripMessageTask, Task, TaskNotOverError)
from .lookup import IdSearchTask, ParallelIdSearchTask
from .advertise import (AdvertiseOnMediaTask, AdvertiseState,
                        TopicAdvertiseTask)
from .search import AttributeSearchTask, TopicQueryTask, TopicSearchTask

DEBUG = False

sh = StreamHandler()
fmt = Formatter("%(asctime)s [%(name)s][%(levelname)s] %(message)s")
sh.setFormatter(fmt)
sh.setLevel(logging.DEBUG if DEBUG else logging.INFO)

loggers = [
    logging.getLogger("core.task"),
    logging.getLogger("core.lookup"),
    logging.getLogger("core.advertise"),
    logging.getLogger("core.search")
]

for logger in loggers:
    logger.addHandler(sh)

__all__ = [
    "Task",
    "ProducerTask",
    "TaskNotOverError",
    "RecursiveTableVisit",
    "PingTableVisit",
    "RoundTripMessageTask",
    "NodeUpdateTask",
    "ImmediateProducer",
    "ParallelTask",
    "ParallelQueueTask",
    "ParallelProducerTask",
    "ParallelQueueProducerTask",
    "IdSearchTask",
    "ParallelIdSearchTask",
    "AdvertiseOnMediaTask",
    "AdvertiseState",
    "TopicAdvertiseTask",
    "TopicQueryTask",
    "TopicSearchTask",
    "AttributeSearchTask"
]
