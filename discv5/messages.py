#!/usr/bin/env python
# -*- codeing:utf-8 -*-
"""A implementation of message encapsulation module of the simulated
node discovery protocol v5.

Messages are never put on a real wire, they are handed over by the
router. Their encoded size is still computed so the traffic of each peer
can be accounted for.

packet = packet-header || packet-data

packet-header = hash || signature || packet-type

The header length is taken from the v4 packet format, the packet-data is
the RLP list of the message.

See: https://github.com/ethereum/devp2p/blob/master/discv5/discv5-wire.md
"""

__author__ = "XiaoHuiHui"

from typing import NamedTuple

import rlp

from enr.datatypes import ENR

PACKET_HEADER_SIZE = 32 + 65 + 1
AVERAGE_TICKET_SIZE = 110


def size_of(message: "Message") -> int:
    """Size of the packet carrying the message in bytes.

    :param Message message: The message.
    :return int: Header size plus RLP encoded length of the message.
    """
    return PACKET_HEADER_SIZE + len(rlp.encode(message.to_RLP()))


class PingMessage(NamedTuple):
    """The encapsulation of ping packet.

    packet-data = [enr-seq]

    The enr-seq field is the current ENR sequence number of the sender.
    """

    enr_seq: int

    TYPE = 0x01

    def __repr__(self) -> str:
        return "ping-packet v5"

    def to_RLP(self) -> list[int]:
        return [self.enr_seq]


class PongMessage(NamedTuple):
    """The encapsulation of pong packet.

    packet-data = [enr-seq]

    Pong is the reply to ping.
    """

    enr_seq: int

    TYPE = 0x02

    def __repr__(self) -> str:
        return "pong-packet v5"

    def to_RLP(self) -> list[int]:
        return [self.enr_seq]


class FindNodeMessage(NamedTuple):
    """The encapsulation of findnode packet.

    packet-data = [target]

    A FindNode packet requests records of nodes close to target. When
    FindNode is received, the recipient should reply with a Nodes packet
    containing the closest 16 records to target found in its local
    table. A target equal to the id of the recipient asks for its own
    record, which then comes first.
    """

    target: bytes

    TYPE = 0x03

    def __repr__(self) -> str:
        return "findnode-packet v5"

    def to_RLP(self) -> list[bytes]:
        return [self.target]


class NodesMessage(NamedTuple):
    """The encapsulation of nodes packet.

    packet-data = [records]

    Nodes is the reply to FindNode.
    """

    records: list[ENR]

    TYPE = 0x04

    def __repr__(self) -> str:
        return "nodes-packet v5"

    def to_RLP(self) -> list[list[list[int | bytes | str]]]:
        return [[enr.to_RLP() for enr in self.records]]


class RegTopicMessage(NamedTuple):
    """The encapsulation of regtopic packet.

    packet-data = [topic, ENR, ticket]

    A RegTopic packet asks the recipient to store an advertisement of
    the sender for the topic. The ticket is empty on the first attempt
    and carries the ticket of the previous answer on retries.
    """

    topic: bytes
    enr: ENR
    ticket: bytes

    TYPE = 0x05

    def __repr__(self) -> str:
        return "regtopic-packet v5"

    def to_RLP(self) -> list[bytes | list[int | bytes | str]]:
        return [self.topic, self.enr.to_RLP(), self.ticket]


class TicketMessage(NamedTuple):
    """The encapsulation of ticket packet.

    packet-data = [ticket, wait-time]

    Ticket is the reply to RegTopic. A wait-time of zero means the
    advertisement was placed, otherwise the advertiser should come back
    with the ticket after wait-time steps.
    """

    ticket: bytes
    wait_steps: int

    TYPE = 0x06

    def __repr__(self) -> str:
        return "ticket-packet v5"

    def to_RLP(self) -> list[bytes | int]:
        return [self.ticket, self.wait_steps]

    @staticmethod
    def average_ticket_size() -> int:
        return AVERAGE_TICKET_SIZE


class TopicQueryMessage(NamedTuple):
    """The encapsulation of topicquery packet.

    packet-data = [topic]

    A TopicQuery packet requests the advertisements stored for topic.
    The recipient replies with a Nodes packet holding at most a bucket
    worth of advertiser records.
    """

    topic: bytes

    TYPE = 0x07

    def __repr__(self) -> str:
        return "topicquery-packet v5"

    def to_RLP(self) -> list[bytes]:
        return [self.topic]


Message = (
    PingMessage | PongMessage | FindNodeMessage | NodesMessage |
    RegTopicMessage | TicketMessage | TopicQueryMessage
)
