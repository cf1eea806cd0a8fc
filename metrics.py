import numpy as np

from utils import setup_logger

logger = setup_logger("Metrics")


class SimulationStats:
    """Host-side packet accounting (the routing protocol never reads these)."""

    def __init__(self, packet_size=1024):
        self.packet_size = packet_size
        self.sent = 0
        self.received = 0
        self.delays = []

    def record_sent(self):
        self.sent += 1

    def record_received(self, delay):
        self.received += 1
        self.delays.append(delay)

    def summary(self, total_time):
        """
        Returns:
            dict with sent, received, lost, packet_loss_ratio (%), packet_delivery_ratio (%),
            throughput_kbps and avg_delay (seconds, -1 when nothing arrived)
        """
        lost = self.sent - self.received
        loss_ratio = (lost / self.sent) * 100.0 if self.sent else 0.0
        pdr = (self.received / self.sent) * 100.0 if self.sent else 0.0
        throughput = (self.received * self.packet_size * 8) / (total_time * 1000.0) if total_time > 0 else 0.0
        avg_delay = float(np.mean(self.delays)) if self.delays else -1.0

        return {
            'sent': self.sent,
            'received': self.received,
            'lost': lost,
            'packet_loss_ratio': loss_ratio,
            'packet_delivery_ratio': pdr,
            'throughput_kbps': throughput,
            'avg_delay': avg_delay,
        }


def update_global_trust_scores(global_scores, protocols):
    """
    Merges every protocol's ledger into one host-level {node_id: score} map.
    Later protocols overwrite earlier ones for the same node id.
    """
    for protocol in protocols:
        if protocol.ledger is None:
            continue
        scores, _ = protocol.ledger.snapshot()
        for node_id, score in scores:
            previous = global_scores.get(node_id)
            if previous is None:
                logger.info(f"Node {node_id} added with initial Trust Score = {score:.2f}")
            elif previous != score:
                logger.info(f"Node {node_id} Trust Score updated from {previous:.2f} to {score:.2f}")
            global_scores[node_id] = score
    return global_scores


def format_statistics(summary, total_nodes, total_time, global_scores=None, protocols=None):
    lines = [
        "-------- Simulation Results --------",
        f"Total Nodes: {total_nodes}",
        f"Simulation Time: {total_time} seconds",
        f"Sent Packets: {summary['sent']}",
        f"Received Packets: {summary['received']}",
        f"Lost Packets: {summary['lost']}",
        f"Packet Loss Ratio: {summary['packet_loss_ratio']:.2f}%",
        f"Packet Delivery Ratio: {summary['packet_delivery_ratio']:.2f}%",
        f"Average Throughput: {summary['throughput_kbps']:.2f} Kbps",
        f"Average End-to-End Delay: {summary['avg_delay']:.6f} seconds",
    ]
    if protocols:
        lines.append("-------- Blackhole Nodes --------")
        for p in protocols:
            lines.append(f"Node {p.node_id} ({p.variant.value}): "
                         f"forwarded={p.total_forwarded}, dropped={p.total_dropped}")
    if global_scores:
        lines.append("-------- Global Trust Scores --------")
        for node_id in sorted(global_scores):
            lines.append(f"Node {node_id}: Trust Score = {global_scores[node_id]:.2f}")
    return "\n".join(lines)
