#!/usr/bin/env python
# -*- codeing:utf-8 -*-
"""Simulation of lookups and topic advertisement over a population of
simulated discv5 peers.
"""

__author__ = "XiaoHuiHui"
__version__ = "1.0"

import logging
from logging import FileHandler, Formatter, StreamHandler

from .population import calc_peer_distribution, fill_tables, generate_peers
from .simulator import (EnrSimulator, LookupSimulator, RoundCounter, Simulator,
                        TopicSimulator)
from .stats import (calc_messages, format_kademlia_stats, format_table,
                    gather_traffic_stats, percentile)

DEBUG = False

sh = StreamHandler()
fmt = Formatter("%(asctime)s [%(name)s][%(levelname)s] %(message)s")
sh.setFormatter(fmt)
sh.setLevel(logging.DEBUG if DEBUG else logging.INFO)

loggers = [
    logging.getLogger("simulator.main"),
    logging.getLogger("simulator.population"),
    logging.getLogger("simulator.simulator")
]

for logger in loggers:
    logger.addHandler(sh)


def log_to_file(path: str) -> FileHandler:
    """Also write the logs of every package to the given file.

    :param str path: Path of the log file, overwritten.
    :return FileHandler: The added handler.
    """
    fh = FileHandler(path, "w", encoding="utf-8")
    fh.setFormatter(fmt)
    fh.setLevel(logging.DEBUG if DEBUG else logging.INFO)
    for name in ["core", "discv5", "simulator"]:
        logging.getLogger(name).addHandler(fh)
    return fh


__all__ = [
    "calc_peer_distribution",
    "fill_tables",
    "generate_peers",
    "EnrSimulator",
    "LookupSimulator",
    "RoundCounter",
    "Simulator",
    "TopicSimulator",
    "calc_messages",
    "format_kademlia_stats",
    "format_table",
    "gather_traffic_stats",
    "percentile",
    "log_to_file"
]
