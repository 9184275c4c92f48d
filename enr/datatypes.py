#!/usr/bin/env python
# -*- codeing:utf-8 -*-
"""The data structure of the node record used by the simulated peers.
"""

__author__ = "XiaoHuiHui"

import ipaddress
import typing
from ipaddress import IPv4Address
from typing import Any, NamedTuple, Optional, TypedDict

import rlp
from eth_hash.auto import keccak
from eth_keys.datatypes import PrivateKey, PublicKey, Signature
from eth_keys.main import KeyAPI

NODE_ID_LENGTH = 32


def node_id_from_public_key(public_key: PublicKey) -> bytes:
    """Derive the node id of the "v4" identity scheme, that is the
    keccak256 hash of the uncompressed public key.

    :param PublicKey public_key: The secp256k1 public key of the node.
    :return bytes: 32 bytes node id.
    """
    return keccak(public_key.to_bytes())


class ENRContent(TypedDict):
    id: str
    secp256k1: Optional[PublicKey]
    ip: Optional[IPv4Address]
    udp: Optional[int]


class ENR(NamedTuple):
    """A node record.

    content   = [seq, k, v, ...]
    signature = sign(content)
    record    = [signature, seq, k, v, ...]

    The simulated peers never verify records, the signature only takes
    its place in the encoded record so traffic is accounted for with
    realistic sizes.
    """

    signature: Optional[Signature]
    seq: int
    node_id: bytes
    content: ENRContent
    extra: dict[str, Any]

    def __hash__(self) -> int:
        return hash(self.node_id) ^ hash(self.seq)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, ENR):
            return False
        return self.node_id == other.node_id and self.seq == other.seq

    def __ne__(self, other: Any) -> bool:
        return not self.__eq__(other)

    def __str__(self) -> str:
        return f"ENR[{self.to_id()}]"

    def to_id(self) -> str:
        return self.node_id.hex()[:7]

    def to_RLP(self) -> list[int | bytes | str]:
        r: list[int | bytes | str] = []
        if self.signature is not None:
            r.append(self.signature.to_bytes()[:-1])
        r.append(self.seq)
        r += ["id", self.content["id"]]
        if self.content["secp256k1"] is not None:
            r += ["secp256k1", self.content["secp256k1"].to_compressed_bytes()]
        if self.content["ip"] is not None:
            r += ["ip", int(self.content["ip"])]
        if self.content["udp"] is not None:
            r += ["udp", self.content["udp"]]
        for key in sorted(self.extra):
            r += [key, self.extra[key]]
        return r

    def size(self) -> int:
        """Length of the RLP encoded record in bytes."""
        return len(rlp.encode(self.to_RLP()))

    def with_attribute(self, key: str, value: bytes) -> "ENR":
        """Return the next version of this record carrying an extra
        key/value pair. The sequence number is increased.
        """
        extra = dict(self.extra)
        extra[key] = value
        return self._replace(seq=self.seq + 1, extra=extra)

    @classmethod
    def from_sign(
        cls,
        prikey: PrivateKey,
        seq: int,
        ip: str,
        udp_port: int
    ) -> "ENR":
        if udp_port <= 0 or udp_port > 65535:
            raise ValueError(f"Invalid port: {udp_port}.")
        pubkey = prikey.public_key
        address = typing.cast(IPv4Address, ipaddress.ip_address(ip))
        content = [
            seq,
            "id",
            "v4",
            "secp256k1",
            pubkey.to_compressed_bytes(),
            "ip",
            int(address),
            "udp",
            udp_port
        ]
        encode: bytes = rlp.encode(content)  # type: ignore
        sig = KeyAPI().ecdsa_sign(keccak(encode), prikey)
        return cls(
            sig,
            seq,
            node_id_from_public_key(pubkey),
            {
                "id": "v4",
                "secp256k1": pubkey,
                "ip": address,
                "udp": udp_port
            },
            {}
        )

    @classmethod
    def from_node_id(
        cls,
        node_id: bytes,
        seq: int = 1,
        ip: str = "127.0.0.1",
        udp_port: int = 30303
    ) -> "ENR":
        """Build an unsigned record around a given node id. Used for
        arranged networks where ids are chosen instead of derived from
        keys.
        """
        if len(node_id) != NODE_ID_LENGTH:
            raise ValueError(
                f"Node id must be {NODE_ID_LENGTH} bytes, got {len(node_id)}."
            )
        return cls(
            None,
            seq,
            node_id,
            {
                "id": "v4",
                "secp256k1": None,
                "ip": typing.cast(IPv4Address, ipaddress.ip_address(ip)),
                "udp": udp_port
            },
            {}
        )
