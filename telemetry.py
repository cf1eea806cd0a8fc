import os
from pathlib import Path

import pandas as pd

from utils import setup_logger

logger = setup_logger("Telemetry")

COLUMNS = ["Time", "NodeID", "TrustScore"]
BLACKLIST_MARKER = "BlacklistedNode"

# Log files that already carry the header in this process
_headers_written = set()


def log_trust_scores(protocol, now, path="trust_scores.csv"):
    """
    Appends one snapshot of a protocol's trust ledger to the CSV log.

    Rows are `now,<node>,<score>` per tracked node, then
    `now,BlacklistedNode,<node>` per blacklisted node. The header goes in once
    per file. The file is opened in append mode and closed again on every call.

    Returns:
        True if the snapshot was written, False otherwise (never raises on I/O errors)
    """
    if protocol.ledger is None:
        logger.warning(f"Node {protocol.node_id} keeps no trust ledger, nothing to log.")
        return False

    scores, blacklist = protocol.ledger.snapshot()
    rows = [(now, node_id, score) for node_id, score in scores]
    rows += [(now, BLACKLIST_MARKER, node_id) for node_id in sorted(blacklist)]

    key = str(Path(path).resolve())
    # A log left by an earlier run already has its header
    write_header = key not in _headers_written and (not os.path.exists(path) or os.path.getsize(path) == 0)
    try:
        # object dtype keeps blacklisted node ids as integers next to float scores
        pd.DataFrame(rows, columns=COLUMNS, dtype=object).to_csv(path, mode="a", header=write_header, index=False)
    except OSError as e:
        logger.error(f"Failed to write trust scores to {path}: {e}")
        return False

    _headers_written.add(key)
    for node_id in sorted(blacklist):
        logger.info(f"Node {protocol.node_id} - Blacklisted Node: {node_id}")
    logger.debug(f"Logged {len(scores)} trust scores for Node {protocol.node_id} at t={now}")
    return True


def periodic_trust_logging(env, protocols, interval=5.0, path="trust_scores.csv"):
    """
    SimPy process: every `interval` time units, log every protocol's ledger.
    Runs until the environment stops; a failed write does not stop it.
    """
    while True:
        yield env.timeout(interval)
        logger.info(f"PeriodicTrustLogging executed at {env.now:.1f} seconds")
        for protocol in protocols:
            if protocol.ledger is not None:
                log_trust_scores(protocol, env.now, path)


def load_trust_log(path="trust_scores.csv"):
    """
    Reads a trust log back.

    Returns:
        (scores, blacklist) DataFrames: scores has Time/NodeID/TrustScore as
        numbers, blacklist has Time/NodeID for each blacklisted sighting.
    """
    df = pd.read_csv(path, dtype={"NodeID": str})
    is_blacklist = df["NodeID"] == BLACKLIST_MARKER

    scores = df[~is_blacklist].copy()
    scores["NodeID"] = scores["NodeID"].astype(int)
    scores["TrustScore"] = scores["TrustScore"].astype(float)

    blacklist = df[is_blacklist][["Time", "TrustScore"]].rename(columns={"TrustScore": "NodeID"})
    blacklist["NodeID"] = blacklist["NodeID"].astype(float).astype(int)
    return scores.reset_index(drop=True), blacklist.reset_index(drop=True)
