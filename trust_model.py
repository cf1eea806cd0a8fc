from enum import Enum

from utils import setup_logger

logger = setup_logger("TrustLedger")

INITIAL_TRUST = 1.0
TRUST_THRESHOLD = 0.3     # Blacklist below this
RECOVERY_THRESHOLD = 0.6  # Leave the blacklist at or above this
DROP_PENALTY = 0.2
FORWARD_REWARD = 0.1
SCORE_PRECISION = 10


class Outcome(Enum):
    DROPPED = "dropped"
    FORWARDED = "forwarded"


class TrustLedger:
    def __init__(self):
        """
        Per-node trust scores in [0, 1] plus the blacklist derived from them.

        Blacklist membership has hysteresis: a node enters when its score falls
        below TRUST_THRESHOLD and only leaves once it climbs back to
        RECOVERY_THRESHOLD. Between the two thresholds membership is whatever
        it was before, so a node hovering around 0.3 does not flap.
        """
        self.trust_scores = {}  # {node_id: score}
        self.blacklisted_nodes = set()

    def initialize(self, total_nodes):
        """Start every node 0..total_nodes-1 at full trust. Call once, before any decision."""
        for node_id in range(total_nodes):
            self.trust_scores[node_id] = INITIAL_TRUST
        logger.info(f"Initialized trust scores for {total_nodes} nodes.")

    def get_score(self, node_id):
        """Stored score, or INITIAL_TRUST for a node never seen. Does not insert."""
        return self.trust_scores.get(node_id, INITIAL_TRUST)

    def is_blacklisted(self, node_id):
        return node_id in self.blacklisted_nodes

    def update(self, node_id, outcome):
        """
        Applies one observation to a node's score and re-evaluates its blacklist membership.

        Args:
            node_id: Node the observation is about
            outcome: Outcome.DROPPED (-0.2) or Outcome.FORWARDED (+0.1)

        Returns:
            The new (clamped) trust score
        """
        if node_id not in self.trust_scores:
            self.trust_scores[node_id] = INITIAL_TRUST

        # Penalize drops harder than forwards are rewarded
        change = -DROP_PENALTY if outcome is Outcome.DROPPED else FORWARD_REWARD
        # Rounded so repeated +/-0.1 steps land exactly on the thresholds
        score = round(min(1.0, max(0.0, self.trust_scores[node_id] + change)), SCORE_PRECISION)
        self.trust_scores[node_id] = score

        action = "penalized" if outcome is Outcome.DROPPED else "rewarded"
        logger.debug(f"Node {node_id} {action}. Trust Score = {score:.2f}")

        if score < TRUST_THRESHOLD:
            if node_id not in self.blacklisted_nodes:
                self.blacklisted_nodes.add(node_id)
                logger.info(f"Node {node_id} added to blacklist.")
        elif score >= RECOVERY_THRESHOLD:
            if node_id in self.blacklisted_nodes:
                self.blacklisted_nodes.discard(node_id)
                logger.info(f"Node {node_id} removed from blacklist.")

        return score

    def snapshot(self):
        """
        Copy of the ledger taken in one step.

        Returns:
            (list of (node_id, score) sorted by node id, frozenset of blacklisted ids)
        """
        scores = sorted(self.trust_scores.items())
        return scores, frozenset(self.blacklisted_nodes)

    @property
    def scores(self):
        return dict(self.trust_scores)

    @property
    def blacklist(self):
        return frozenset(self.blacklisted_nodes)
