import ipaddress
import math

import networkx as nx
import simpy

from config import SimulationConfig, ProtocolConfig
from metrics import SimulationStats
from packet import Packet, PacketHeader
from routing import (
    create_protocol, Decision, InterfaceEvent, InterfaceEventType, INTERFACE_NOT_FOUND,
)
from utils import setup_logger

logger = setup_logger()

NETWORK_BASE = ipaddress.IPv4Address("10.1.1.0")
LOOPBACK = ipaddress.IPv4Address("127.0.0.1")


class Interface:
    def __init__(self, index, device, address):
        self.index = index
        self.device = device
        self.address = address


class Ipv4Stack:
    """
    The address/interface context a routing protocol is bound to.
    Interface 0 is loopback, interface 1 the node's wireless device.
    """
    def __init__(self, node_id, address):
        self.node_id = node_id
        self.interfaces = [
            Interface(0, "lo", LOOPBACK),
            Interface(1, f"wifi{node_id}", address),
        ]
        self.protocol = None

    @property
    def device(self):
        return self.interfaces[1].device

    @property
    def address(self):
        return self.interfaces[1].address

    def get_interface_for_device(self, device):
        for iface in self.interfaces:
            if iface.device == device:
                return iface.index
        return INTERFACE_NOT_FOUND

    def is_destination_address(self, destination, interface):
        return 0 <= interface < len(self.interfaces) and destination == self.node_id

    def get_address(self, interface):
        return self.interfaces[interface].address

    def get_net_device(self, interface):
        return self.interfaces[interface].device

    def set_routing_protocol(self, protocol):
        self.protocol = protocol
        protocol.set_ipv4(self)
        for iface in self.interfaces:
            protocol.notify(InterfaceEvent(InterfaceEventType.UP, iface.index))
            protocol.notify(InterfaceEvent(InterfaceEventType.ADD_ADDRESS, iface.index, iface.address))


class NetworkSimulation:
    def __init__(self, env, config=None):
        self.env = env
        self.config = config or SimulationConfig()
        self.graph = nx.Graph()
        self.nodes = []
        self.stacks = {}
        self.protocols = []
        self.stats = SimulationStats(packet_size=self.config.packet_size)

    def create_topology(self, num_nodes=None, grid_width=None, spacing=None, radio_range=None):
        """
        Places nodes on a grid (row first) and links every pair within radio range.
        With the defaults this is a 10-node line where only neighbours hear each other.
        """
        num_nodes = num_nodes if num_nodes is not None else self.config.num_nodes
        grid_width = grid_width or self.config.grid_width
        spacing = spacing if spacing is not None else self.config.spacing
        radio_range = radio_range if radio_range is not None else self.config.radio_range

        self.graph = nx.Graph()
        for n in range(num_nodes):
            pos = ((n % grid_width) * spacing, (n // grid_width) * spacing)
            self.graph.add_node(n, pos=pos)

        for u in self.graph.nodes():
            for v in self.graph.nodes():
                if u < v and math.dist(self.graph.nodes[u]['pos'], self.graph.nodes[v]['pos']) <= radio_range:
                    self.graph.add_edge(u, v, delay=self.config.link_delay)

        self.nodes = list(self.graph.nodes())
        self.stacks = {n: Ipv4Stack(n, NETWORK_BASE + n + 1) for n in self.nodes}
        logger.info(f"Topology created with {num_nodes} nodes and {len(self.graph.edges())} links")

    def install_blackhole(self, node_id, variant, drop_probability=None, seed=None):
        """Attach a BlackholeRouting protocol to a node. Returns it, or None if the node does not exist."""
        if node_id not in self.stacks:
            logger.error(f"Blackhole node index out of range: {node_id}")
            return None

        config = ProtocolConfig(drop_probability=drop_probability, total_nodes=len(self.nodes))
        protocol = create_protocol(variant, node_id, config, seed=seed)
        self.stacks[node_id].set_routing_protocol(protocol)
        self.protocols.append(protocol)
        logger.warning(f"Node {node_id} is running {protocol.variant.value} blackhole routing")
        return protocol

    def find_path(self, source, target):
        # Stand-in for route discovery: fewest hops
        try:
            return nx.shortest_path(self.graph, source=source, target=target)
        except (nx.NetworkXNoPath, nx.NodeNotFound):
            return None

    def _on_error(self, packet, header, error):
        logger.debug(f"Packet {packet.uid} from {header.source} to {header.destination} failed: {error.value}")

    def _receive(self, node_id, packet, header):
        """One hop's decision at node_id."""
        stack = self.stacks[node_id]

        def deliver(pkt, hdr, interface):
            self.stats.record_received(self.env.now - pkt.timestamp)

        def forward(route, pkt, hdr):
            logger.debug(f"Node {node_id} forwarding packet {pkt.uid} via {route.output_device}")

        if stack.protocol is None:
            if header.destination == node_id:
                deliver(packet, header, 1)
                return Decision.DELIVER_LOCALLY
            return Decision.FORWARD

        result = stack.protocol.route_input(packet, header, stack.device, forward, deliver, self._on_error)
        return result.decision

    def send_packet(self, source, destination):
        """SimPy process carrying one packet hop by hop from source to destination."""
        packet = Packet(size=self.config.packet_size, timestamp=self.env.now)
        header = PacketHeader(source=source, destination=destination)
        self.stats.record_sent()

        path = self.find_path(source, destination)
        if path is None:
            logger.debug(f"No path from {source} to {destination}")
            return

        for u, v in zip(path, path[1:]):
            yield self.env.timeout(self.graph[u][v]['delay'])
            decision = self._receive(v, packet, header)
            if decision is not Decision.FORWARD:
                if decision is Decision.DROP:
                    logger.debug(f"Packet {packet.uid} dropped at node {v}")
                return

    def traffic_generator(self, source, sink, rate, duration):
        """Constant bit rate source: `rate` packets per time unit for `duration`."""
        interval = 1.0 / rate
        for _ in range(int(rate * duration)):
            self.env.process(self.send_packet(source, sink))
            yield self.env.timeout(interval)

    def run(self, until):
        logger.info("Starting simulation...")
        self.env.run(until=until)
        logger.info("Simulation finished.")


def build_simulation(config, variant, env=None):
    """Topology, blackhole nodes and traffic for one scenario; the caller adds telemetry and runs it."""
    env = env or simpy.Environment()
    net_sim = NetworkSimulation(env, config)
    net_sim.create_topology()

    for i, node_id in enumerate(config.blackhole_nodes):
        net_sim.install_blackhole(node_id, variant, config.drop_probability, seed=config.seed + i)

    env.process(net_sim.traffic_generator(config.source, config.sink_node(),
                                          config.traffic_rate, config.sim_time))
    return net_sim
