import argparse
import os

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from config import SimulationConfig, load_config
from metrics import update_global_trust_scores, format_statistics
from network_sim import build_simulation
from routing import ProtocolVariant
from telemetry import periodic_trust_logging
from utils import setup_logger
from visualization import visualize_network, plot_trust_evolution

logger = setup_logger("Main")


def run_scenario(config, variant, trust_log_path=None):
    """
    Runs one blackhole scenario end to end.

    Returns:
        dict with the statistics summary, global trust scores and the installed protocols
    """
    net_sim = build_simulation(config, variant)

    if variant is ProtocolVariant.TRUST_MITIGATED:
        net_sim.env.process(periodic_trust_logging(
            net_sim.env, net_sim.protocols, config.trust_log_interval,
            trust_log_path or config.trust_log_path,
        ))

    net_sim.run(until=config.sim_time)

    global_scores = update_global_trust_scores({}, net_sim.protocols)
    return {
        'summary': net_sim.stats.summary(config.sim_time),
        'global_scores': global_scores,
        'protocols': net_sim.protocols,
        'net_sim': net_sim,
    }


def plot_comparison(results, filename="blackhole_comparison.png"):
    labels = list(results.keys())
    pdrs = [results[l]['summary']['packet_delivery_ratio'] for l in labels]
    throughputs = [results[l]['summary']['throughput_kbps'] for l in labels]

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(12, 5))
    colors = ['#FF6B6B', '#4ECDC4']

    bars1 = ax1.bar(labels, pdrs, color=colors)
    ax1.set_ylabel('Packet Delivery Ratio (%)', fontsize=12)
    ax1.set_title('PDR (Blackhole Attack)', fontsize=14, fontweight='bold')
    ax1.set_ylim(0, 100)
    ax1.grid(axis='y', alpha=0.3)
    for bar in bars1:
        ax1.text(bar.get_x() + bar.get_width()/2., bar.get_height(),
                 f'{bar.get_height():.1f}%', ha='center', va='bottom', fontsize=10)

    bars2 = ax2.bar(labels, throughputs, color=colors)
    ax2.set_ylabel('Average Throughput (Kbps)', fontsize=12)
    ax2.set_title('Throughput', fontsize=14, fontweight='bold')
    ax2.grid(axis='y', alpha=0.3)
    for bar in bars2:
        ax2.text(bar.get_x() + bar.get_width()/2., bar.get_height(),
                 f'{bar.get_height():.1f}', ha='center', va='bottom', fontsize=10)

    plt.tight_layout()
    plt.savefig(filename, dpi=150)
    plt.close(fig)
    print(f"  [OK] Saved: {filename}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Blackhole attack and trust-based mitigation in an ad-hoc network")
    parser.add_argument("--config", help="YAML file overriding SimulationConfig defaults")
    parser.add_argument("--no-plots", action="store_true", help="skip writing charts")
    args = parser.parse_args(argv)

    config = load_config(args.config) if args.config else SimulationConfig()
    for name in ("Main", "NetworkSim", "Metrics", "BlackholeRouting", "TrustLedger", "Telemetry"):
        setup_logger(name, level=config.log_level)

    print("=" * 60)
    print("Blackhole Attack vs Trust-Based Mitigation")
    print("=" * 60)
    print(f"  - Nodes: {config.num_nodes} (grid spacing {config.spacing} m)")
    print(f"  - Flow: {config.source} -> {config.sink_node()} at {config.traffic_rate} pkt/s")
    print(f"  - Blackhole Nodes: {config.blackhole_nodes}")
    print(f"  - Drop Probability: {config.drop_probability}")
    print("=" * 60)

    results = {}
    print("\n[1/2] Simulating unmitigated blackhole...")
    results['Unmitigated'] = run_scenario(config, ProtocolVariant.UNMITIGATED_DROP)
    print("\n[2/2] Simulating trust-mitigated blackhole...")
    results['Trust-Mitigated'] = run_scenario(config, ProtocolVariant.TRUST_MITIGATED)

    for name, result in results.items():
        print(f"\n==== {name} ====")
        print(format_statistics(result['summary'], config.num_nodes, config.sim_time,
                                result['global_scores'], result['protocols']))

    if not args.no_plots:
        print("\nGenerating plots...")
        plot_comparison(results)
        mitigated = results['Trust-Mitigated']
        net_sim = mitigated['net_sim']
        visualize_network(net_sim.graph, mitigated['protocols'],
                          path=net_sim.find_path(config.source, config.sink_node()))
        if mitigated['protocols'] and os.path.exists(config.trust_log_path):
            plot_trust_evolution(config.trust_log_path)

    return results


if __name__ == "__main__":
    main()
