"""Tests for the population, the statistics and the simulation driver."""

import random

import pytest
import ujson

import main
from discv5.messages import PingMessage
from discv5.router import Router
from simulator.population import (calc_peer_distribution, fill_tables,
                                  generate_peers)
from simulator.simulator import (EnrSimulator, LookupSimulator,
                                 RoundCounter, Simulator, TopicSimulator)
from simulator.stats import (calc_messages, format_kademlia_stats,
                             format_table, gather_traffic_stats, percentile)

PEER_COUNT = 40


@pytest.fixture
def rnd() -> random.Random:
    return random.Random(1)


@pytest.fixture
def peers(rnd: random.Random):
    router = Router(rnd)
    population = generate_peers(PEER_COUNT, rnd, router)
    fill_tables(population, [PEER_COUNT] * PEER_COUNT, rnd)
    return population


# ── Population ────────────────────────────────────────────────────────


class TestPopulation:
    def test_generate_peers(self, rnd: random.Random) -> None:
        router = Router(rnd)
        population = generate_peers(5, rnd, router)
        assert len(population) == 5
        assert len(router) == 5
        assert len({peer.enr.node_id for peer in population}) == 5
        assert str(population[1].enr.content["ip"]) == "10.0.0.2"

    def test_same_seed_same_population(self) -> None:
        first = generate_peers(3, random.Random(9), Router(random.Random(9)))
        second = generate_peers(3, random.Random(9), Router(random.Random(9)))
        assert [p.enr.node_id for p in first] == [p.enr.node_id for p in second]

    def test_distribution_bounds(self, rnd: random.Random) -> None:
        distribution = calc_peer_distribution(1000, 0.18, 1.0, 240.0, rnd)
        assert len(distribution) == 1000
        assert all(1 <= value <= 1000 for value in distribution)
        mature = sum(1 for value in distribution if value == 1000)
        assert 300 < mature < 500

    def test_distribution_is_deterministic(self) -> None:
        first = calc_peer_distribution(100, 0.18, 1.0, 240.0, random.Random(2))
        second = calc_peer_distribution(100, 0.18, 1.0, 240.0, random.Random(2))
        assert first == second

    def test_invalid_distribution(self, rnd: random.Random) -> None:
        with pytest.raises(ValueError):
            calc_peer_distribution(10, 0, 1.0, 240.0, rnd)

    def test_fill_tables(self, peers) -> None:
        assert all(len(peer.table) > 0 for peer in peers)
        assert all(peer.enr not in peer.table for peer in peers)


# ── Stats ─────────────────────────────────────────────────────────────


class TestStats:
    def test_percentile(self) -> None:
        values = list(range(1, 101))
        assert percentile(values, 95) == 95
        assert percentile(values, 100) == 100
        assert percentile([7], 50) == 7
        assert percentile([], 95) == 0

    def test_invalid_percentile(self) -> None:
        with pytest.raises(ValueError):
            percentile([1], 0)
        with pytest.raises(ValueError):
            percentile([1], 101)

    def test_format_table(self) -> None:
        text = format_table([["Peer #", "Stored"], ["0", "12"]])
        assert text.splitlines() == [
            "Peer #  Stored",
            "------  ------",
            "0       12",
        ]

    def test_format_table_without_header(self) -> None:
        assert format_table([["a", "b"]], header=False) == "a  b"
        assert format_table([]) == ""

    def test_kademlia_stats(self, peers) -> None:
        lines = format_kademlia_stats(peers).splitlines()
        assert len(lines) == PEER_COUNT + 2

    def test_traffic_sorted(self, peers) -> None:
        peers[0].router.route(peers[0], peers[1].enr, PingMessage(1))
        traffic = gather_traffic_stats(peers)
        assert traffic == sorted(traffic)
        assert traffic[-1] > 0


# ── Simulation ────────────────────────────────────────────────────────


class TestRoundCounter:
    def test_budget(self) -> None:
        counter = RoundCounter(2)
        assert not counter.is_over()
        counter.next()
        counter.next()
        assert counter.is_over()

    def test_negative_budget(self) -> None:
        with pytest.raises(ValueError):
            RoundCounter(-1)


class TestSimulator:
    def test_run_stops_at_budget(self, peers, rnd: random.Random) -> None:
        simulator = Simulator(peers, rnd)
        counter = RoundCounter(10)
        simulator.run_table_refresh(counter)
        assert counter.current == 10
        assert max(gather_traffic_stats(peers)) > 0

    def test_run_without_tasks(self, peers, rnd: random.Random) -> None:
        simulator = Simulator(peers, rnd)
        assert simulator.run([], RoundCounter(10)) == 0

    def test_start_fn_falls_back_on_empty_table(self, rnd: random.Random) -> None:
        population = generate_peers(3, rnd, Router(rnd))
        simulator = Simulator(population, rnd)
        seed = simulator.start_fn(population[0])()
        assert seed.node_id != population[0].enr.node_id

    def test_liveness_checks_remove_dead(
        self, peers, rnd: random.Random
    ) -> None:
        dead = peers[-1]
        del dead.router.nodes[dead.enr.node_id]
        alive = peers[:-1]
        simulator = Simulator(alive, rnd)
        simulator.run_liveness_checks(RoundCounter(200))
        assert all(dead.enr not in peer.table for peer in alive)

    def test_lookups(self, peers, rnd: random.Random) -> None:
        simulator = Simulator(peers, rnd)
        lookups = LookupSimulator(simulator, 3, 16, 3)
        stats = lookups.run_lookups(peers[:2], RoundCounter(300))
        assert 0 < stats["rounds"] < 300
        assert len(stats["lookups"]) == 2
        for lookup in stats["lookups"]:
            assert 0 <= lookup["accuracy"] <= 1
            assert lookup["queries"] > 0
            assert lookup["traffic"] > 0

    def test_topic_ads(self, peers, rnd: random.Random) -> None:
        simulator = Simulator(peers, rnd)
        topics = TopicSimulator(simulator, 3, 16, 4, 10)
        stats = topics.run_topic_ad_simulation(
            b"subnet", 10, RoundCounter(300), 95
        )
        assert stats["advertisers"] == 4
        assert stats["finished"] == 4
        assert all(placed > 0 for placed in stats["placed_ads"])
        assert 0 < stats["stored_ads"] <= sum(stats["placed_ads"])
        assert stats["traffic_percentile"] <= stats["traffic_max"]

    def test_reset_all(self, peers, rnd: random.Random) -> None:
        simulator = Simulator(peers, rnd)
        simulator.run_table_refresh(RoundCounter(4))
        simulator.reset_all()
        assert all(peer.tasks == [] for peer in peers)
        assert max(gather_traffic_stats(peers)) == 0

    def test_lookups_count_messages(self, peers, rnd: random.Random) -> None:
        simulator = Simulator(peers, rnd)
        lookups = LookupSimulator(simulator, 3, 16, 3)
        stats = lookups.run_lookups(peers[:1], RoundCounter(300))
        lookup = stats["lookups"][0]
        assert lookup["messages"] == calc_messages(peers[0])
        assert lookup["messages"] >= 2 * lookup["queries"]

    def test_reset_all_keeping_ads(self, peers, rnd: random.Random) -> None:
        simulator = Simulator(peers, rnd)
        topics = TopicSimulator(simulator, 3, 16, 4, 10)
        stats = topics.run_topic_ad_simulation(
            b"subnet", 10, RoundCounter(300), 95
        )
        simulator.reset_all(keep_ads=True)
        assert sum(len(peer.topic_table) for peer in peers) == \
            stats["stored_ads"]
        simulator.reset_all()
        assert sum(len(peer.topic_table) for peer in peers) == 0


# ── Topic search ──────────────────────────────────────────────────────


class TestTopicSearch:
    def test_searchers_find_the_advertisers(self, rnd: random.Random) -> None:
        router = Router(rnd)
        population = generate_peers(PEER_COUNT, rnd, router, ad_lifetime=1000)
        fill_tables(population, [PEER_COUNT] * PEER_COUNT, rnd)
        simulator = Simulator(population, rnd)
        topics = TopicSimulator(simulator, 3, 16, 4, 10)
        ads = topics.run_topic_ad_simulation(
            b"subnet", 10, RoundCounter(300), 95
        )
        simulator.reset_all(keep_ads=True)
        stats = topics.run_topic_search(b"subnet", 5, 2, RoundCounter(300))
        assert stats["topic"] == ads["topic"]
        assert stats["searchers"] == 5
        assert 0 < stats["rounds"] < 300
        assert stats["succeeded"] == 5
        assert all(search["found"] >= 2 for search in stats["searches"])
        assert all(search["traffic"] > 0 for search in stats["searches"])

    def test_nothing_advertised(self, peers, rnd: random.Random) -> None:
        simulator = Simulator(peers, rnd)
        topics = TopicSimulator(simulator, 3, 16, 4, 10)
        stats = topics.run_topic_search(b"subnet", 3, 1, RoundCounter(300))
        assert stats["succeeded"] == 0
        assert all(search["found"] == 0 for search in stats["searches"])


# ── ENR attribute advertisement ───────────────────────────────────────


class TestEnrSimulator:
    def test_update_is_distributed(self, peers, rnd: random.Random) -> None:
        simulator = Simulator(peers, rnd)
        enrs = EnrSimulator(simulator, 3, check_every=5)
        stats = enrs.run_enr_update_simulation(
            "subnet", b"\x0d", 10, RoundCounter(300), 95
        )
        assert stats["advertisers"] == 4
        assert stats["stale_records"] == 0
        assert 0 < stats["rounds"] < 300
        assert stats["rounds"] % 5 == 0
        assert len(stats["subnet_peers"]) == PEER_COUNT
        assert stats["subnet_peers"] == sorted(stats["subnet_peers"])
        assert 0 < stats["subnet_peers"][-1] <= 4
        assert enrs.count_stale_records(peers) == 0

    def test_budget_limits_update(self, peers, rnd: random.Random) -> None:
        simulator = Simulator(peers, rnd)
        enrs = EnrSimulator(simulator, 3)
        stats = enrs.run_enr_update_simulation(
            "subnet", b"\x0d", 10, RoundCounter(2), 95
        )
        assert stats["rounds"] == 2
        assert stats["stale_records"] > 0

    def test_subnet_search(self, peers, rnd: random.Random) -> None:
        simulator = Simulator(peers, rnd)
        enrs = EnrSimulator(simulator, 3)
        enrs.run_enr_update_simulation(
            "subnet", b"\x0d", 25, RoundCounter(300), 95
        )
        simulator.reset_all()
        stats = enrs.run_enr_subnet_search(
            "subnet", b"\x0d", 4, 2, RoundCounter(300), 10
        )
        assert stats["searchers"] == 4
        assert stats["succeeded"] == 4
        assert all(search["found"] >= 2 for search in stats["searches"])

    def test_invalid_check_interval(self, peers, rnd: random.Random) -> None:
        with pytest.raises(ValueError):
            EnrSimulator(Simulator(peers, rnd), 3, check_every=0)


# ── Reproducibility ───────────────────────────────────────────────────


def _run(seed: int) -> dict:
    rnd = random.Random(seed)
    router = Router(rnd)
    population = generate_peers(PEER_COUNT, rnd, router)
    fill_tables(population, [PEER_COUNT] * PEER_COUNT, rnd)
    simulator = Simulator(population, rnd)
    topics = TopicSimulator(simulator, 3, 16, 4, 10)
    topic_stats = topics.run_topic_ad_simulation(
        b"subnet", 10, RoundCounter(300), 95
    )
    simulator.reset_all()
    lookups = LookupSimulator(simulator, 3, 16, 3)
    lookup_stats = lookups.run_lookups(population[:3], RoundCounter(300))
    return {"topic": topic_stats, "lookup": lookup_stats}


class TestReproducibility:
    def test_same_seed_same_stats(self) -> None:
        first = _run(5)
        second = _run(5)
        assert first == second
        assert len(first["lookup"]["lookups"]) == 3



# ── Entry point ───────────────────────────────────────────────────────


class TestMain:
    def test_table_maintenance(
        self, peers, rnd: random.Random, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(main.opts, "TABLE_REFRESH_ROUNDS", 3)
        monkeypatch.setattr(main.opts, "LIVENESS_ROUNDS", 2)
        main.run_table_maintenance(Simulator(peers, rnd))
        assert all(peer.current_step == 5 for peer in peers)

    def test_every_phase_is_written(
        self, tmp_path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        results = tmp_path / "results.json"
        monkeypatch.setattr(main.opts, "LOG_PATH", "")
        monkeypatch.setattr(main.opts, "RESULTS_PATH", str(results))
        monkeypatch.setattr(main.opts, "PEER_COUNT", 30)
        monkeypatch.setattr(main.opts, "TABLE_REFRESH_ROUNDS", 5)
        monkeypatch.setattr(main.opts, "LIVENESS_ROUNDS", 5)
        monkeypatch.setattr(main.opts, "REGISTER_ROUNDS", 100)
        monkeypatch.setattr(main.opts, "SEARCH_ROUNDS", 100)
        monkeypatch.setattr(main.opts, "SEARCHERS_COUNT", 3)
        main.main()
        written = ujson.loads(results.read_text(encoding="utf-8"))
        assert written["peers"] == 30
        for phase in ["topic", "topic_search", "enr", "enr_search", "lookup"]:
            assert phase in written
        assert written["topic_search"]["searchers"] == 3
        assert written["enr"]["advertisers"] == 1
        assert len(written["lookup"]["lookups"]) <= 3
