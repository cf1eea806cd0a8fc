import os
import tempfile

import simpy

from config import ProtocolConfig
from routing import BlackholeRouting, ProtocolVariant
import telemetry
from telemetry import log_trust_scores, periodic_trust_logging, load_trust_log
from trust_model import Outcome


def make_protocol(node_id=5, total_nodes=3):
    return BlackholeRouting(node_id, ProtocolConfig(total_nodes=total_nodes))


def read_lines(path):
    with open(path, encoding="utf-8") as f:
        return f.read().splitlines()


def test_snapshot_rows_and_single_header():
    protocol = make_protocol()
    for _ in range(4):
        protocol.ledger.update(2, Outcome.DROPPED)

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "trust_scores.csv")
        assert log_trust_scores(protocol, 5.0, path)
        assert log_trust_scores(protocol, 10.0, path)

        lines = read_lines(path)
        assert lines[0] == "Time,NodeID,TrustScore"
        assert lines.count("Time,NodeID,TrustScore") == 1

        first, second = lines[1:5], lines[5:9]
        assert first == ["5.0,0,1.0", "5.0,1,1.0", "5.0,2,0.2", "5.0,BlacklistedNode,2"]
        # Same values, only the timestamp differs
        assert [l.split(",", 1)[1] for l in first] == [l.split(",", 1)[1] for l in second]
        assert len(lines) == 9


def test_header_once_across_protocols():
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "shared.csv")
        for node_id in (1, 2, 3):
            assert log_trust_scores(make_protocol(node_id, total_nodes=2), 5.0, path)
        lines = read_lines(path)
        assert lines.count("Time,NodeID,TrustScore") == 1
        assert len(lines) == 1 + 3 * 2


def test_existing_log_from_earlier_run_keeps_one_header():
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "trust_scores.csv")
        with open(path, "w", encoding="utf-8") as f:
            f.write("Time,NodeID,TrustScore\n5.0,0,1.0\n")

        telemetry._headers_written.clear()
        assert log_trust_scores(make_protocol(total_nodes=2), 10.0, path)

        lines = read_lines(path)
        assert lines.count("Time,NodeID,TrustScore") == 1
        assert lines == ["Time,NodeID,TrustScore", "5.0,0,1.0", "10.0,0,1.0", "10.0,1,1.0"]

        scores, blacklist = load_trust_log(path)
        assert sorted(scores["Time"].unique()) == [5.0, 10.0]
        assert blacklist.empty


def test_write_failure_is_reported():
    protocol = make_protocol()
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "missing_dir", "trust_scores.csv")
        assert log_trust_scores(protocol, 5.0, path) is False
        assert not os.path.exists(path)


def test_unmitigated_protocol_is_skipped():
    protocol = BlackholeRouting(4, variant=ProtocolVariant.UNMITIGATED_DROP)
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "trust_scores.csv")
        assert log_trust_scores(protocol, 5.0, path) is False
        assert not os.path.exists(path)


def test_periodic_logging_rearms():
    env = simpy.Environment()
    protocol = make_protocol(total_nodes=2)
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "periodic.csv")
        env.process(periodic_trust_logging(env, [protocol], interval=5.0, path=path))
        env.run(until=16)

        scores, blacklist = load_trust_log(path)
        assert sorted(scores["Time"].unique()) == [5.0, 10.0, 15.0]
        assert len(scores) == 6
        assert blacklist.empty


def test_periodic_logging_survives_write_failures():
    env = simpy.Environment()
    protocol = make_protocol()
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "nope", "periodic.csv")
        env.process(periodic_trust_logging(env, [protocol], interval=5.0, path=path))
        env.run(until=11)
        assert env.now == 11


def test_load_trust_log_splits_blacklist():
    protocol = make_protocol()
    for _ in range(4):
        protocol.ledger.update(1, Outcome.DROPPED)
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "trust_scores.csv")
        log_trust_scores(protocol, 5.0, path)
        scores, blacklist = load_trust_log(path)
        assert list(scores["NodeID"]) == [0, 1, 2]
        assert scores.loc[scores["NodeID"] == 1, "TrustScore"].iloc[0] == 0.2
        assert list(blacklist["NodeID"]) == [1]


if __name__ == "__main__":
    test_snapshot_rows_and_single_header()
    test_header_once_across_protocols()
    test_existing_log_from_earlier_run_keeps_one_header()
    test_write_failure_is_reported()
    test_unmitigated_protocol_is_skipped()
    test_periodic_logging_rearms()
    test_periodic_logging_survives_write_failures()
    test_load_trust_log_splits_blacklist()
    print("All Tests Passed!")
