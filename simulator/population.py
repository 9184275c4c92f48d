#!/usr/bin/env python
# -*- codeing:utf-8 -*-
"""Generation of the simulated peer population.

It's believed that p2p node uptime complies with a Pareto distribution.
See Stefan Saroiu, Krishna P. Gummadi, Steven D. Gribble "A Measurement
Study of Peer-to-Peer File Sharing Systems".

The longer a peer is up, the more of the network went through its
Kademlia table. With alpha = 0.18 and xm = 1, and 240 units of uptime
being enough to see every peer, about 40% of the peers are mature.
"""

__author__ = "XiaoHuiHui"

import ipaddress
import logging
import math
import random

from eth_keys.datatypes import PrivateKey

from discv5.node import Node
from discv5.router import Router
from enr.datatypes import ENR

logger = logging.getLogger("simulator.population")

BASE_ADDRESS = int(ipaddress.ip_address("10.0.0.1"))
UDP_PORT = 30303


def generate_private_key(rnd: random.Random) -> PrivateKey:
    """Draw a private key from the shared generator, so the same seed
    always gives the same population.
    """
    return PrivateKey(rnd.getrandbits(256).to_bytes(32, "big"))


def generate_peers(
    peer_count: int,
    rnd: random.Random,
    router: Router,
    **node_params: int
) -> list[Node]:
    """Create the peers, each one with its own key and record, and
    register them with the router.

    :param int peer_count: Number of peers.
    :param Random rnd: The shared random generator.
    :param Router router: The simulated network.
    :return list[Node]: The peers.
    """
    logger.info(f"Creating private key - enr pairs for {peer_count} nodes.")
    peers: list[Node] = []
    for index in range(peer_count):
        private_key = generate_private_key(rnd)
        ip = str(ipaddress.ip_address(BASE_ADDRESS + index))
        enr = ENR.from_sign(private_key, 1, ip, UDP_PORT)
        node = Node(enr, private_key, rnd, router, **node_params)
        router.register(node)
        peers.append(node)
        if index > 0 and index % 1000 == 0:
            logger.info(f"{index} peers created.")
    return peers


def calc_peer_distribution(
    peer_count: int,
    alpha: float,
    xm: float,
    max_uptime: float,
    rnd: random.Random
) -> list[int]:
    """Number of peers each peer has met, following the Pareto
    distribution of uptimes.

    The uptime of the peer at quantile q is xm / (1 - q) ^ (1 / alpha).
    A peer up for `max_uptime` or longer has met the whole network,
    younger ones a proportional share of it. The values are shuffled so
    the order of the peers carries no information.

    :return list[int]: Number of met peers, one value per peer.
    """
    if alpha <= 0 or xm <= 0 or max_uptime <= 0:
        raise ValueError(
            "Pareto parameters and maximum uptime must be positive."
        )
    distribution: list[int] = []
    for index in range(peer_count):
        quantile = (index + 0.5) / peer_count
        uptime = xm / math.pow(1 - quantile, 1 / alpha)
        share = min(uptime, max_uptime) / max_uptime
        distribution.append(max(1, math.ceil(share * peer_count)))
    rnd.shuffle(distribution)
    return distribution


def fill_tables(
    peers: list[Node],
    distribution: list[int],
    rnd: random.Random
) -> None:
    """Fill the table of every peer with the number of random peers
    given by the distribution. Every peer is considered alive while
    filling.
    """
    assert len(peers) == len(distribution)
    logger.info("Filling peer's Kademlia tables according to distribution.")
    for index, peer in enumerate(peers):
        for _ in range(distribution[index]):
            other = peers[rnd.randrange(len(peers))]
            peer.table.put(other.enr, lambda enr, cb: cb(True))
        if index > 0 and index % 1000 == 0:
            logger.info(f"{index} peer tables filled.")
