#!/usr/bin/env python
# -*- codeing:utf-8 -*-
"""Round based driver of the discovery simulation.

Every round, the top-level tasks are stepped first, then the task queue
of every peer. A round stands for one message leg.
"""

__author__ = "XiaoHuiHui"

import logging
import random
from typing import Any, Callable, Sequence

from eth_hash.auto import keccak

from core.advertise import TopicAdvertiseTask
from core.search import AttributeSearchTask, TopicSearchTask
from core.lookup import ParallelIdSearchTask
from core.task import PingTableVisit, RecursiveTableVisit, Task
from discv5.node import Node
from discv5.table import KademliaTable
from enr.datatypes import ENR

from .stats import (calc_messages, calc_traffic, gather_traffic_stats,
                    percentile)

logger = logging.getLogger("simulator.simulator")


class RoundCounter:
    """A budget of simulation rounds."""
    def __init__(self, rounds: int) -> None:
        if rounds < 0:
            raise ValueError(f"Rounds must not be negative, got {rounds}.")
        self.rounds = rounds
        self.current = 0

    def next(self) -> None:
        self.current += 1

    def is_over(self) -> bool:
        return self.current >= self.rounds


class Simulator:
    """
    """
    def __init__(self, peers: list[Node], rnd: random.Random) -> None:
        self.peers = peers
        self.rnd = rnd

    def start_fn(self, node: Node) -> Callable[[], ENR]:
        """Seed picker of the lookups of a node: a random record of its
        table, or a random peer if the table is empty.
        """
        def pick() -> ENR:
            records = node.table.find_all()
            if len(records) == 0:
                others = [
                    peer for peer in self.peers
                    if peer.enr.node_id != node.enr.node_id
                ]
                return self.rnd.choice(others).enr
            return self.rnd.choice(records)

        return pick

    def step(self, tasks: Sequence[Task]) -> None:
        for task in tasks:
            task.step()
        for peer in self.peers:
            peer.step()

    def run(self, tasks: Sequence[Task], counter: RoundCounter) -> int:
        """Step until every task is over or the round budget is spent.

        :return int: Number of rounds run.
        """
        start = counter.current
        while not counter.is_over():
            if all(task.is_over() for task in tasks):
                break
            self.step(tasks)
            counter.next()
            if counter.current % 50 == 0:
                done = sum(1 for task in tasks if task.is_over())
                logger.info(
                    f"Round {counter.current}: {done}/{len(tasks)} tasks over."
                )
        return counter.current - start

    def run_table_refresh(self, counter: RoundCounter) -> None:
        """Every peer walks its table asking each record for the
        neighbours of its own id, answers are merged into the table.
        """
        tasks: list[Task] = []
        for peer in self.peers:
            def refresh(enr: ENR, peer: Node = peer) -> None:
                def merge(records: list[ENR]) -> None:
                    for record in records:
                        peer.update_node_later(record)

                peer.find_nodes(enr, peer.enr.node_id, merge)

            tasks.append(RecursiveTableVisit(peer, refresh))
        logger.info(f"Refreshing tables for {counter.rounds} rounds.")
        self.run(tasks, counter)

    def run_liveness_checks(self, counter: RoundCounter) -> None:
        """Every peer pings its table entries and drops the dead ones."""
        tasks = [PingTableVisit(peer) for peer in self.peers]
        logger.info(f"Checking liveness for {counter.rounds} rounds.")
        self.run(tasks, counter)

    def reset_all(self, keep_ads: bool = False) -> None:
        for peer in self.peers:
            peer.reset_all(keep_ads)


class LookupSimulator:
    """Lookups of random targets from a set of searchers."""
    def __init__(
        self,
        simulator: Simulator,
        parallelism: int,
        radius: int,
        alpha: int
    ) -> None:
        self.simulator = simulator
        self.parallelism = parallelism
        self.radius = radius
        self.alpha = alpha

    def run_lookups(
        self,
        searchers: list[Node],
        counter: RoundCounter
    ) -> dict[str, Any]:
        rnd = self.simulator.rnd
        everyone = [peer.enr for peer in self.simulator.peers]
        searches: list[tuple[Node, bytes, ParallelIdSearchTask]] = []
        for node in searchers:
            target = rnd.getrandbits(256).to_bytes(32, "big")
            search = ParallelIdSearchTask(
                node,
                target,
                self.simulator.start_fn(node),
                self.parallelism,
                self.radius,
                rnd,
                self.alpha
            )
            searches.append((node, target, search))
        rounds = self.simulator.run([s for _, _, s in searches], counter)
        results = []
        for node, target, search in searches:
            if not search.is_over():
                logger.warning(f"Lookup of {node} is not over in time.")
                continue
            found = {enr.node_id for enr in search.get_result()}
            others = [
                enr for enr in everyone if enr.node_id != node.enr.node_id
            ]
            expected = {
                enr.node_id for enr in KademliaTable.filter_neighborhood(
                    target, others, self.radius
                )
            }
            results.append({
                "node": node.enr.node_id.hex(),
                "queries": search.queries,
                "accuracy": len(found & expected) / len(expected),
                "messages": calc_messages(node),
                "traffic": calc_traffic(node)
            })
        logger.info(
            f"{len(results)}/{len(searchers)} lookups over in {rounds} "
            "rounds."
        )
        return {"rounds": rounds, "lookups": results}


class TopicSimulator:
    """A share of the peers advertise one topic."""
    def __init__(
        self,
        simulator: Simulator,
        search_parallelism: int,
        radius: int,
        ad_parallelism: int,
        ad_retry_steps: int
    ) -> None:
        self.simulator = simulator
        self.search_parallelism = search_parallelism
        self.radius = radius
        self.ad_parallelism = ad_parallelism
        self.ad_retry_steps = ad_retry_steps

    def run_topic_ad_simulation(
        self,
        topic: bytes,
        share_pct: int,
        counter: RoundCounter,
        target_percentile: int
    ) -> dict[str, Any]:
        rnd = self.simulator.rnd
        peers = self.simulator.peers
        topic_hash = keccak(topic)
        advertisers = rnd.sample(peers, max(1, len(peers) * share_pct // 100))
        logger.info(
            f"{len(advertisers)} peers advertise topic {topic_hash.hex()[:7]}."
        )
        outcomes: dict[bytes, list[bool]] = {}
        tasks: list[Task] = []
        for node in advertisers:
            def on_done(results: list[bool], node: Node = node) -> None:
                outcomes[node.enr.node_id] = results

            media_search = ParallelIdSearchTask(
                node,
                topic_hash,
                self.simulator.start_fn(node),
                self.search_parallelism,
                self.radius,
                rnd
            )
            tasks.append(
                TopicAdvertiseTask(
                    node,
                    media_search,
                    topic_hash,
                    self.ad_retry_steps,
                    self.ad_parallelism,
                    on_done
                )
            )
        rounds = self.simulator.run(tasks, counter)
        placed = sorted(sum(results) for results in outcomes.values())
        traffic = gather_traffic_stats(peers)
        stats = {
            "topic": topic_hash.hex(),
            "rounds": rounds,
            "advertisers": len(advertisers),
            "finished": len(outcomes),
            "placed_ads": placed,
            "stored_ads": sum(len(peer.topic_table) for peer in peers),
            "traffic_percentile": percentile(traffic, target_percentile),
            "traffic_max": traffic[-1] if len(traffic) > 0 else 0
        }
        logger.info(
            f"{len(outcomes)}/{len(advertisers)} advertisers finished in "
            f"{rounds} rounds, {sum(placed)} ads placed."
        )
        return stats

    def run_topic_search(
        self,
        topic: bytes,
        searchers_count: int,
        require_ads: int,
        counter: RoundCounter
    ) -> dict[str, Any]:
        """Random peers look for `require_ads` advertisers of the topic
        through the media nodes closest to the topic hash.
        """
        rnd = self.simulator.rnd
        peers = self.simulator.peers
        topic_hash = keccak(topic)
        searchers = rnd.sample(peers, min(searchers_count, len(peers)))
        searches: list[tuple[Node, TopicSearchTask]] = []
        for node in searchers:
            media_search = ParallelIdSearchTask(
                node,
                topic_hash,
                self.simulator.start_fn(node),
                self.search_parallelism,
                self.radius,
                rnd
            )
            searches.append((
                node,
                TopicSearchTask(
                    node,
                    media_search,
                    topic_hash,
                    require_ads,
                    self.search_parallelism
                )
            ))
        rounds = self.simulator.run([task for _, task in searches], counter)
        results = [
            {
                "node": node.enr.node_id.hex(),
                "found": len(task.found),
                "traffic": calc_traffic(node)
            }
            for node, task in searches
        ]
        succeeded = sum(1 for r in results if r["found"] >= require_ads)
        logger.info(
            f"{succeeded}/{len(searchers)} searchers found {require_ads} "
            f"advertisers of {topic_hash.hex()[:7]} in {rounds} rounds."
        )
        return {
            "topic": topic_hash.hex(),
            "rounds": rounds,
            "searchers": len(searchers),
            "succeeded": succeeded,
            "searches": results
        }


class EnrSimulator:
    """A share of the peers announce a subnet through an attribute of
    their node record instead of topic ads.

    The new records spread with the liveness checks: a pong carries the
    record sequence number of the peer, a newer one makes the pinging
    peer fetch the record.
    """
    def __init__(
        self,
        simulator: Simulator,
        alpha: int,
        check_every: int = 10
    ) -> None:
        if check_every <= 0:
            raise ValueError(
                f"Check interval must be positive, got {check_every}."
            )
        self.simulator = simulator
        self.alpha = alpha
        self.check_every = check_every

    def count_stale_records(self, advertisers: list[Node]) -> int:
        """Table entries of advertisers older than their current
        record, over all peers.
        """
        latest = {node.enr.node_id: node.enr.seq for node in advertisers}
        stale = 0
        for peer in self.simulator.peers:
            for enr in peer.table.find_all():
                seq = latest.get(enr.node_id)
                if seq is not None and enr.seq < seq:
                    stale += 1
        return stale

    def run_enr_update_simulation(
        self,
        key: str,
        value: Any,
        share_pct: int,
        counter: RoundCounter,
        target_percentile: int
    ) -> dict[str, Any]:
        """Advertisers update their record, then every peer pings its
        table until no stale advertiser record is left or the round
        budget is spent.
        """
        rnd = self.simulator.rnd
        peers = self.simulator.peers
        advertisers = rnd.sample(peers, max(1, len(peers) * share_pct // 100))
        for node in advertisers:
            node.enr = node.enr.with_attribute(key, value)
        logger.info(
            f"{len(advertisers)} peers set {key} = {value!r} in their "
            "records."
        )
        tasks = [PingTableVisit(peer) for peer in peers]
        start = counter.current
        stale = self.count_stale_records(advertisers)
        while stale > 0 and not counter.is_over():
            self.simulator.step(tasks)
            counter.next()
            if (counter.current - start) % self.check_every == 0:
                stale = self.count_stale_records(advertisers)
                logger.info(
                    f"Round {counter.current}: {stale} stale records left."
                )
        rounds = counter.current - start
        stale = self.count_stale_records(advertisers)
        known = sorted(
            sum(
                1 for enr in peer.table.find_all()
                if enr.extra.get(key) == value
            )
            for peer in peers
        )
        traffic = gather_traffic_stats(peers)
        logger.info(
            f"Record update of {len(advertisers)} advertisers took "
            f"{rounds} rounds, {stale} stale records left."
        )
        return {
            "rounds": rounds,
            "advertisers": len(advertisers),
            "stale_records": stale,
            "subnet_peers": known,
            "traffic_percentile": percentile(traffic, target_percentile),
            "traffic_max": traffic[-1] if len(traffic) > 0 else 0
        }

    def run_enr_subnet_search(
        self,
        key: str,
        value: Any,
        searchers_count: int,
        require: int,
        counter: RoundCounter,
        max_lookups: int
    ) -> dict[str, Any]:
        """Random peers walk the network looking for `require` records
        carrying the attribute.
        """
        rnd = self.simulator.rnd
        peers = self.simulator.peers
        searchers = rnd.sample(peers, min(searchers_count, len(peers)))
        searches = [
            (
                node,
                AttributeSearchTask(
                    node,
                    key,
                    value,
                    require,
                    self.simulator.start_fn(node),
                    self.alpha,
                    rnd,
                    max_lookups
                )
            )
            for node in searchers
        ]
        rounds = self.simulator.run([task for _, task in searches], counter)
        results = [
            {
                "node": node.enr.node_id.hex(),
                "found": len(task.found),
                "lookups": task.lookups,
                "traffic": calc_traffic(node)
            }
            for node, task in searches
        ]
        succeeded = sum(1 for r in results if r["found"] >= require)
        logger.info(
            f"{succeeded}/{len(searchers)} searchers found {require} peers "
            f"with {key} = {value!r} in {rounds} rounds."
        )
        return {
            "rounds": rounds,
            "searchers": len(searchers),
            "succeeded": succeeded,
            "searches": results
        }
