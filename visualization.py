import networkx as nx
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import matplotlib.patches as mpatches

from telemetry import load_trust_log
from trust_model import TRUST_THRESHOLD, RECOVERY_THRESHOLD


def visualize_network(graph, protocols=None, filename="network_topology.png", return_fig=False, path=None):
    """
    Draws the topology at its grid positions.
    - Blackhole nodes -> Red
    - Nodes blacklisted by any blackhole's ledger -> Orange
    - Everything else -> Green

    Args:
        protocols: BlackholeRouting instances installed in the network
        path: Optional node list to highlight (e.g. the flow's route)
    """
    protocols = protocols or []
    blackholes = {p.node_id for p in protocols}
    blacklisted = set()
    for p in protocols:
        if p.ledger is not None:
            blacklisted |= p.ledger.blacklist

    fig = plt.figure(figsize=(12, 6))
    pos = nx.get_node_attributes(graph, 'pos') or nx.spring_layout(graph, seed=42)

    node_colors = []
    for node in graph.nodes():
        if node in blackholes:
            node_colors.append('#FF4444')
        elif node in blacklisted:
            node_colors.append('#FFA500')
        else:
            node_colors.append('#44FF44')

    nx.draw_networkx_nodes(graph, pos, node_color=node_colors, node_size=600, edgecolors='black')
    nx.draw_networkx_edges(graph, pos, alpha=0.4, edge_color='gray', style='dashed')

    legend_patches = [
        mpatches.Patch(color='#44FF44', label='Normal Node'),
        mpatches.Patch(color='#FF4444', label='Blackhole Node'),
        mpatches.Patch(color='#FFA500', label='Blacklisted'),
    ]

    if path and len(path) > 1:
        nx.draw_networkx_edges(graph, pos, edgelist=list(zip(path, path[1:])),
                               edge_color='blue', width=3, alpha=0.8)
        legend_patches.append(mpatches.Patch(color='blue', label='Flow Path'))

    nx.draw_networkx_labels(graph, pos, font_weight='bold')

    plt.legend(handles=legend_patches, loc='upper left', bbox_to_anchor=(1, 1))
    plt.title("Ad-hoc Network Topology & Blackhole Nodes")
    plt.axis('off')
    plt.tight_layout()

    if return_fig:
        plt.close(fig)
        return fig

    try:
        plt.savefig(filename)
        print(f"Network visualization saved to {filename}")
    except OSError as e:
        print(f"Error saving visualization: {e}")
    finally:
        plt.close()


def plot_trust_evolution(log_path="trust_scores.csv", filename="trust_evolution.png"):
    """Trust score of every tracked node over simulation time, from the telemetry log."""
    scores, blacklist = load_trust_log(log_path)

    fig, ax = plt.subplots(figsize=(12, 6))
    # Several ledgers may log the same node at the same time; show their mean
    mean_scores = scores.groupby(["Time", "NodeID"])["TrustScore"].mean().unstack("NodeID")
    for node_id in mean_scores.columns:
        ax.plot(mean_scores.index, mean_scores[node_id], label=f"Node {node_id}", marker='o', markersize=3)

    ax.axhline(y=TRUST_THRESHOLD, color='red', linestyle='--', alpha=0.5, label='Blacklist Threshold')
    ax.axhline(y=RECOVERY_THRESHOLD, color='green', linestyle='--', alpha=0.5, label='Recovery Threshold')
    ax.set_xlabel('Simulation Time (s)', fontsize=12)
    ax.set_ylabel('Trust Score', fontsize=12)
    ax.set_title(f'Trust Scores Over Time ({blacklist["NodeID"].nunique()} nodes blacklisted)',
                 fontsize=14, fontweight='bold')
    ax.set_ylim(0, 1.1)
    ax.grid(alpha=0.3)
    ax.legend(fontsize=8, loc='upper left', bbox_to_anchor=(1, 1))

    plt.tight_layout()
    plt.savefig(filename, dpi=150)
    plt.close(fig)
    print(f"Trust evolution saved to {filename}")
    return filename
