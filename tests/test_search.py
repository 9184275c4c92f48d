"""Tests for topic search and record attribute search."""

import random

import pytest

from core.search import AttributeSearchTask, TopicQueryTask, TopicSearchTask
from core.task import ImmediateProducer, TaskNotOverError
from discv5.messages import TopicQueryMessage
from discv5.node import Node
from discv5.router import Router
from enr.datatypes import ENR

TOPIC_HASH = b"\x13" * 32
SUBNET = b"\x0d"


def _enr(value: int) -> ENR:
    return ENR.from_node_id(value.to_bytes(32, "big"))


def _network(count: int) -> list[Node]:
    rnd = random.Random(5)
    router = Router(rnd)
    peers = []
    for value in range(1, count + 1):
        node = Node(_enr(value), None, rnd, router)
        router.register(node)
        peers.append(node)
    return peers


def _drive(task, peers: list[Node], limit: int = 300) -> int:
    for tick in range(1, limit + 1):
        task.step()
        for peer in peers:
            peer.step()
        if task.is_over():
            return tick
    raise AssertionError("task did not finish")


# ── TopicQueryTask ────────────────────────────────────────────────────


class TestTopicQueryTask:
    def test_returns_the_stored_ads(self) -> None:
        peers = _network(3)
        searcher, media, advertiser = peers
        media.topic_table.register(TOPIC_HASH, advertiser.enr, 0)
        task = TopicQueryTask(searcher, media.enr, TOPIC_HASH)
        with pytest.raises(TaskNotOverError):
            task.get_result()
        assert _drive(task, peers) == 2
        assert task.get_result() == [advertiser.enr]

    def test_silent_media(self) -> None:
        peers = _network(1)
        task = TopicQueryTask(peers[0], _enr(99), TOPIC_HASH)
        _drive(task, peers)
        assert task.get_result() == []

    def test_single_request(self) -> None:
        peers = _network(2)
        searcher, media = peers
        task = TopicQueryTask(searcher, media.enr, TOPIC_HASH)
        task.step()
        task.step()
        queries = [
            queued for queued in searcher.tasks
            if isinstance(queued.message, TopicQueryMessage)
        ]
        assert len(queries) == 1


# ── TopicSearchTask ───────────────────────────────────────────────────


class TestTopicSearchTask:
    def _arrange(self) -> list[Node]:
        peers = _network(7)
        searcher, first, second, third, a, b, c = peers
        first.topic_table.register(TOPIC_HASH, a.enr, 0)
        first.topic_table.register(TOPIC_HASH, b.enr, 0)
        first.topic_table.register(TOPIC_HASH, searcher.enr, 0)
        second.topic_table.register(TOPIC_HASH, b.enr, 0)
        second.topic_table.register(TOPIC_HASH, c.enr, 0)
        return peers

    def test_stops_once_enough_advertisers(self) -> None:
        peers = self._arrange()
        searcher, first, second, third = peers[:4]
        media = ImmediateProducer([first.enr, second.enr, third.enr])
        task = TopicSearchTask(searcher, media, TOPIC_HASH, 3, 1)
        _drive(task, peers)
        found = {enr.node_id for enr in task.get_result()}
        assert found == {peer.enr.node_id for peer in peers[4:]}
        assert not task.queries[2].placed

    def test_over_when_every_media_answered(self) -> None:
        peers = self._arrange()
        searcher, first, second, third = peers[:4]
        media = ImmediateProducer([first.enr, second.enr, third.enr])
        task = TopicSearchTask(searcher, media, TOPIC_HASH, 10, 2)
        _drive(task, peers)
        assert len(task.get_result()) == 3
        assert all(query.is_over() for query in task.queries)

    def test_own_ad_is_ignored(self) -> None:
        peers = self._arrange()
        searcher, first = peers[:2]
        task = TopicSearchTask(
            searcher, ImmediateProducer([first.enr]), TOPIC_HASH, 10, 1
        )
        _drive(task, peers)
        assert searcher.enr not in task.get_result()
        assert len(task.get_result()) == 2

    def test_no_media(self) -> None:
        peers = _network(1)
        task = TopicSearchTask(
            peers[0], ImmediateProducer([]), TOPIC_HASH, 1, 1
        )
        _drive(task, peers)
        assert task.get_result() == []

    def test_invalid_require(self) -> None:
        peers = _network(1)
        with pytest.raises(ValueError, match="Require"):
            TopicSearchTask(peers[0], ImmediateProducer([]), TOPIC_HASH, 0, 1)


# ── AttributeSearchTask ───────────────────────────────────────────────


class TestAttributeSearchTask:
    def _arrange(self) -> list[Node]:
        """20 peers knowing each other, the last 5 carry the subnet
        attribute. The first one only knows peers without it.
        """
        peers = _network(20)
        for peer in peers[15:]:
            peer.enr = peer.enr.with_attribute("subnet", SUBNET)
        for peer in peers[1:]:
            for other in peers:
                peer.table.put(other.enr)
        for other in peers[1:15]:
            peers[0].table.put(other.enr)
        return peers

    def test_found_in_own_table(self) -> None:
        peers = self._arrange()
        task = AttributeSearchTask(
            peers[1], "subnet", SUBNET, 5, lambda: peers[2].enr, 3,
            random.Random(1), 1
        )
        assert task.is_over()
        assert len(task.get_result()) == 5
        assert task.lookups == 0

    def test_found_through_lookups(self) -> None:
        peers = self._arrange()
        searcher = peers[0]
        task = AttributeSearchTask(
            searcher, "subnet", SUBNET, 2, lambda: peers[1].enr, 3,
            random.Random(1), 5
        )
        assert not task.is_over()
        _drive(task, peers)
        result = task.get_result()
        assert len(result) >= 2
        assert all(enr.extra["subnet"] == SUBNET for enr in result)
        assert task.lookups >= 1
        assert task.queries > 0

    def test_gives_up_after_max_lookups(self) -> None:
        peers = self._arrange()
        task = AttributeSearchTask(
            peers[0], "subnet", SUBNET, 10, lambda: peers[1].enr, 3,
            random.Random(1), 2
        )
        _drive(task, peers)
        assert task.lookups == 2
        assert len(task.get_result()) < 10

    def test_invalid_require(self) -> None:
        peers = _network(2)
        with pytest.raises(ValueError, match="Require"):
            AttributeSearchTask(
                peers[0], "subnet", SUBNET, 0, lambda: peers[1].enr, 3,
                random.Random(1), 1
            )
