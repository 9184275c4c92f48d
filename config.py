#!/usr/bin/env python
# -*- codeing:utf-8 -*-

"""
"""

__author__ = "XiaoHuiHui"
__version__ = "1.0"

# Basic config
SEED = 1
PEER_COUNT = 2000
LOG_PATH = "./logs/simulator.log"
RESULTS_PATH = "./results.json"
# Network config
CHURN_PCTS = 0
# DPT config
NODES_PER_KBUCKET = 16
NUM_ROUTING_TABLE_BUCKETS = 256
# Table fill (Pareto distribution of peer uptimes)
PARETO_ALPHA = 0.18
PARETO_XM = 1.0
PARETO_MAX_UPTIME = 240.0
# Table maintenance config
TABLE_REFRESH_ROUNDS = 20
LIVENESS_ROUNDS = 20
# Lookup config
ALPHA = 3
SEARCH_PARALLELISM = 3
SEARCHERS_COUNT = 10
SEARCH_ROUNDS = 300
# Topic advertisement config
TOPIC = b"eth2/beacon_chain/subnet_1"
SUBNET_SHARE_PCT = 5
REQUIRE_ADS = 8
AD_PARALLELISM = 4
AD_RETRY_STEPS = 10
TOPIC_ADS_CAPACITY = 100
AD_LIFETIME_STEPS = 1000
REGISTER_ROUNDS = 300
# ENR attribute advertisement config
ENR_SUBNET_KEY = "subnet"
SUBNET = b"\x0d"
ENR_CHECK_ROUNDS = 10
MAX_SUBNET_LOOKUPS = 20
# Stats config
TARGET_PERCENTILE = 95
