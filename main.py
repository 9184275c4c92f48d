#!/usr/bin/env python
# -*- codeing:utf-8 -*-
"""
"""

__author__ = "XiaoHuiHui"
__version__ = "1.0"

import logging
import os
import random
from typing import Any

import ujson

import config as opts
from discv5 import Router
from discv5.node import Node
from simulator import (EnrSimulator, LookupSimulator, RoundCounter,
                       Simulator, TopicSimulator, calc_peer_distribution,
                       fill_tables, format_kademlia_stats, format_table,
                       gather_traffic_stats, generate_peers, log_to_file,
                       percentile)

logging.basicConfig(
    format="%(asctime)s [%(name)s][%(levelname)s] %(message)s",
    level=logging.INFO,
    handlers=[
        # StreamHandler(),
        # FileHandler("./simulator.log", "w")
    ]
)

logger = logging.getLogger("simulator.main")


def build_population(rnd: random.Random, router: Router) -> list[Node]:
    peers = generate_peers(
        opts.PEER_COUNT,
        rnd,
        router,
        bucket_size=opts.NODES_PER_KBUCKET,
        num_buckets=opts.NUM_ROUTING_TABLE_BUCKETS,
        topic_capacity=opts.TOPIC_ADS_CAPACITY,
        ad_lifetime=opts.AD_LIFETIME_STEPS
    )
    logger.info(
        "Calculating distribution of peer tables fullness with alpha = "
        f"{opts.PARETO_ALPHA} and Xm = {opts.PARETO_XM}."
    )
    distribution = calc_peer_distribution(
        opts.PEER_COUNT,
        opts.PARETO_ALPHA,
        opts.PARETO_XM,
        opts.PARETO_MAX_UPTIME,
        rnd
    )
    fill_tables(peers, distribution, rnd)
    logger.debug(f"Kademlia table stats:\n{format_kademlia_stats(peers)}")
    return peers


def run_topic_ads(simulator: Simulator) -> dict[str, Any]:
    logger.info("Run simulation with placing topic ads.")
    topic_simulator = TopicSimulator(
        simulator,
        opts.SEARCH_PARALLELISM,
        opts.NODES_PER_KBUCKET,
        opts.AD_PARALLELISM,
        opts.AD_RETRY_STEPS
    )
    stats = topic_simulator.run_topic_ad_simulation(
        opts.TOPIC,
        opts.SUBNET_SHARE_PCT,
        RoundCounter(opts.REGISTER_ROUNDS),
        opts.TARGET_PERCENTILE
    )
    stats["satisfied"] = sum(
        1 for placed in stats["placed_ads"] if placed >= opts.REQUIRE_ADS
    )
    logger.info(
        "Topic ads:\n" + format_table([
            ["Advertisers", "Finished", f"With {opts.REQUIRE_ADS}+ ads",
             "Stored ads", f"Traffic p{opts.TARGET_PERCENTILE}"],
            [str(stats["advertisers"]), str(stats["finished"]),
             str(stats["satisfied"]), str(stats["stored_ads"]),
             str(stats["traffic_percentile"])]
        ])
    )
    return stats


def run_table_maintenance(simulator: Simulator) -> None:
    logger.info("Run table refresh and liveness checks.")
    simulator.run_table_refresh(RoundCounter(opts.TABLE_REFRESH_ROUNDS))
    simulator.run_liveness_checks(RoundCounter(opts.LIVENESS_ROUNDS))
    logger.debug(
        f"Kademlia table stats:\n{format_kademlia_stats(simulator.peers)}"
    )


def run_topic_search(simulator: Simulator) -> dict[str, Any]:
    logger.info("Run simulation with topic search.")
    topic_simulator = TopicSimulator(
        simulator,
        opts.SEARCH_PARALLELISM,
        opts.NODES_PER_KBUCKET,
        opts.AD_PARALLELISM,
        opts.AD_RETRY_STEPS
    )
    stats = topic_simulator.run_topic_search(
        opts.TOPIC,
        opts.SEARCHERS_COUNT,
        opts.REQUIRE_ADS,
        RoundCounter(opts.SEARCH_ROUNDS)
    )
    rows = [["Searcher", "Found ads", "Traffic"]]
    for search in stats["searches"]:
        rows.append([
            search["node"][:7], str(search["found"]), str(search["traffic"])
        ])
    logger.info("Topic search:\n" + format_table(rows))
    return stats


def run_enr_update(simulator: Simulator) -> dict[str, Any]:
    logger.info("Run simulation with ENR attribute advertisement.")
    enr_simulator = EnrSimulator(simulator, opts.ALPHA, opts.ENR_CHECK_ROUNDS)
    stats = enr_simulator.run_enr_update_simulation(
        opts.ENR_SUBNET_KEY,
        opts.SUBNET,
        opts.SUBNET_SHARE_PCT,
        RoundCounter(opts.REGISTER_ROUNDS),
        opts.TARGET_PERCENTILE
    )
    known = stats["subnet_peers"]
    logger.info(
        "Subnet peers in tables:\n" + format_table([
            ["Rounds", "Stale records", "Without subnet peers",
             f"Subnet peers p{opts.TARGET_PERCENTILE}", "Max"],
            [str(stats["rounds"]), str(stats["stale_records"]),
             str(sum(1 for count in known if count == 0)),
             str(percentile(known, opts.TARGET_PERCENTILE)),
             str(known[-1] if len(known) > 0 else 0)]
        ])
    )
    return stats


def run_enr_subnet_search(simulator: Simulator) -> dict[str, Any]:
    logger.info("Run simulation with ENR attribute search.")
    enr_simulator = EnrSimulator(simulator, opts.ALPHA, opts.ENR_CHECK_ROUNDS)
    stats = enr_simulator.run_enr_subnet_search(
        opts.ENR_SUBNET_KEY,
        opts.SUBNET,
        opts.SEARCHERS_COUNT,
        opts.REQUIRE_ADS,
        RoundCounter(opts.SEARCH_ROUNDS),
        opts.MAX_SUBNET_LOOKUPS
    )
    rows = [["Searcher", "Found peers", "Lookups", "Traffic"]]
    for search in stats["searches"]:
        rows.append([
            search["node"][:7],
            str(search["found"]),
            str(search["lookups"]),
            str(search["traffic"])
        ])
    logger.info("Subnet search:\n" + format_table(rows))
    return stats


def run_lookups(simulator: Simulator) -> dict[str, Any]:
    logger.info("Run simulation with random lookups.")
    lookup_simulator = LookupSimulator(
        simulator,
        opts.SEARCH_PARALLELISM,
        opts.NODES_PER_KBUCKET,
        opts.ALPHA
    )
    searchers = simulator.rnd.sample(
        simulator.peers, min(opts.SEARCHERS_COUNT, len(simulator.peers))
    )
    stats = lookup_simulator.run_lookups(
        searchers, RoundCounter(opts.SEARCH_ROUNDS)
    )
    rows = [["Searcher", "Queries", "Accuracy", "Messages", "Traffic"]]
    for lookup in stats["lookups"]:
        rows.append([
            lookup["node"][:7],
            str(lookup["queries"]),
            f"{lookup['accuracy']:.2f}",
            str(lookup["messages"]),
            str(lookup["traffic"])
        ])
    logger.info("Lookups:\n" + format_table(rows))
    traffic = gather_traffic_stats(simulator.peers)
    stats["traffic_percentile"] = percentile(traffic, opts.TARGET_PERCENTILE)
    return stats


def main() -> None:
    if opts.LOG_PATH:
        os.makedirs(os.path.dirname(opts.LOG_PATH) or ".", exist_ok=True)
        log_to_file(opts.LOG_PATH)
    rnd = random.Random(opts.SEED)
    router = Router(rnd)
    peers = build_population(rnd, router)
    router.churn_pcts = opts.CHURN_PCTS
    simulator = Simulator(peers, rnd)
    results = {"seed": opts.SEED, "peers": len(peers)}
    run_table_maintenance(simulator)
    simulator.reset_all()
    results["topic"] = run_topic_ads(simulator)
    simulator.reset_all(keep_ads=True)
    results["topic_search"] = run_topic_search(simulator)
    simulator.reset_all()
    results["enr"] = run_enr_update(simulator)
    simulator.reset_all()
    results["enr_search"] = run_enr_subnet_search(simulator)
    simulator.reset_all()
    results["lookup"] = run_lookups(simulator)
    with open(opts.RESULTS_PATH, "w", encoding="utf-8") as f:
        f.write(ujson.dumps(results, indent=2))
    logger.info(f"Results written to {opts.RESULTS_PATH}.")


if __name__ == "__main__":
    main()
