import numbers
import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from config import MITIGATED_DROP_PROBABILITY, UNMITIGATED_DROP_PROBABILITY
from packet import Route
from trust_model import TrustLedger, Outcome
from utils import setup_logger

logger = setup_logger("BlackholeRouting")

INTERFACE_NOT_FOUND = -1


class Decision(Enum):
    DELIVER_LOCALLY = "deliver_locally"
    FORWARD = "forward"
    DROP = "drop"


class RoutingError(Enum):
    NOT_INITIALIZED = "not_initialized"
    INTERFACE_NOT_FOUND = "interface_not_found"
    CALLBACK_UNAVAILABLE = "callback_unavailable"
    INVALID_CONFIGURATION = "invalid_configuration"
    NO_ROUTE_TO_HOST = "no_route_to_host"


class ProtocolVariant(Enum):
    UNMITIGATED_DROP = "unmitigated"  # drops any packet with a fixed probability
    TRUST_MITIGATED = "mitigated"     # drops only toward blacklisted nodes


class InterfaceEventType(Enum):
    UP = "up"
    DOWN = "down"
    ADD_ADDRESS = "add_address"
    REMOVE_ADDRESS = "remove_address"


@dataclass
class InterfaceEvent:
    kind: InterfaceEventType
    interface: int
    address: object = None


@dataclass
class RouteInputResult:
    decision: Decision
    error: Optional[RoutingError] = None


@dataclass
class RouteOutputResult:
    route: Optional[Route] = None
    error: Optional[RoutingError] = None


class BlackholeRouting:
    def __init__(self, node_id, config=None, variant=ProtocolVariant.TRUST_MITIGATED, seed=None):
        """
        Forwarding decision for a (possibly malicious) relay.

        UNMITIGATED_DROP drops every inbound packet with drop_probability.
        TRUST_MITIGATED keeps a TrustLedger and only rolls the drop dice for
        packets headed to blacklisted destinations.

        Args:
            node_id: Node this protocol is attached to
            config: ProtocolConfig; drop_probability defaults per variant
            variant: ProtocolVariant tag
            seed: Seed for this node's uniform random generator
        """
        self.node_id = node_id
        self.variant = variant
        self._ipv4 = None
        self._random = random.Random(seed)
        self.total_dropped = 0
        self.total_forwarded = 0

        if variant is ProtocolVariant.TRUST_MITIGATED:
            self.ledger = TrustLedger()
            self._drop_probability = MITIGATED_DROP_PROBABILITY
        else:
            self.ledger = None
            self._drop_probability = UNMITIGATED_DROP_PROBABILITY

        if config is not None:
            if config.drop_probability is not None:
                self.set_drop_probability(config.drop_probability)
            if self.ledger is not None and config.total_nodes:
                self.ledger.initialize(config.total_nodes)

        logger.info(f"Node {node_id}: {variant.value} blackhole routing, "
                    f"drop probability = {self._drop_probability}")

    @property
    def drop_probability(self):
        return self._drop_probability

    def set_drop_probability(self, probability):
        """
        Returns RoutingError.INVALID_CONFIGURATION (and keeps the old value) for
        anything that is not a real number in [0, 1], NaN included.
        """
        is_number = isinstance(probability, numbers.Real) and not isinstance(probability, bool)
        if not is_number or not 0.0 <= probability <= 1.0:
            logger.warning(f"Node {self.node_id}: invalid drop probability {probability!r}. "
                           f"Retaining current value = {self._drop_probability}")
            return RoutingError.INVALID_CONFIGURATION
        self._drop_probability = float(probability)
        logger.info(f"Node {self.node_id}: drop probability updated to {probability}")
        return None

    def set_ipv4(self, ipv4):
        self._ipv4 = ipv4
        logger.info(f"Node {self.node_id}: IPv4 context bound.")

    def _should_drop(self, destination):
        if self.ledger is not None and not self.ledger.is_blacklisted(destination):
            return False
        if self._random.random() < self._drop_probability:
            return True
        if self.ledger is not None:
            logger.info(f"Blacklisted Node {destination} forwarded packet (adaptive behavior).")
        return False

    def _fail(self, error, packet, header, error_cb):
        logger.error(f"Node {self.node_id}: {error.value}, dropping packet {packet.uid}.")
        if error_cb is not None:
            error_cb(packet, header, error)
        return RouteInputResult(Decision.DROP, error)

    def route_input(self, packet, header, device, forward_cb=None, deliver_cb=None, error_cb=None):
        """
        Decides what happens to a packet that arrived on `device`.

        Callbacks belong to the host and are passed per call:
            forward_cb(route, packet, header)
            deliver_cb(packet, header, interface_index)
            error_cb(packet, header, error)

        Returns:
            RouteInputResult; errors come back as Decision.DROP with the error set.
        """
        destination = header.destination

        if self._ipv4 is None:
            return self._fail(RoutingError.NOT_INITIALIZED, packet, header, error_cb)

        interface = self._ipv4.get_interface_for_device(device)
        if interface == INTERFACE_NOT_FOUND:
            return self._fail(RoutingError.INTERFACE_NOT_FOUND, packet, header, error_cb)

        if self._should_drop(destination):
            self.total_dropped += 1
            if self.ledger is not None:
                self.ledger.update(destination, Outcome.DROPPED)
                logger.warning(f"Packet dropped by Blacklisted Node: Node {destination}")
            else:
                logger.debug(f"Node {self.node_id}: dropped packet {packet.uid} "
                             f"from {header.source} to {destination}")
            return RouteInputResult(Decision.DROP)

        if self._ipv4.is_destination_address(destination, interface):
            if deliver_cb is None:
                return self._fail(RoutingError.CALLBACK_UNAVAILABLE, packet, header, error_cb)
            deliver_cb(packet, header, interface)
            logger.debug(f"Packet {packet.uid} delivered locally to Node {destination}")
            return RouteInputResult(Decision.DELIVER_LOCALLY)

        # A blacklisted destination that escaped the drop above is rewarded here too
        self.total_forwarded += 1
        if self.ledger is not None:
            self.ledger.update(destination, Outcome.FORWARDED)

        if forward_cb is None:
            return self._fail(RoutingError.CALLBACK_UNAVAILABLE, packet, header, error_cb)

        route = Route(
            destination=destination,
            source=self._ipv4.get_address(interface),
            output_device=self._ipv4.get_net_device(interface),
        )
        forward_cb(route, packet, header)
        logger.debug(f"Node {self.node_id}: forwarded packet {packet.uid} toward Node {destination}")
        return RouteInputResult(Decision.FORWARD)

    def route_output(self, packet, header, oif=None):
        """This protocol never originates routes."""
        logger.warning(f"Node {self.node_id}: route_output called but not supported.")
        return RouteOutputResult(route=None, error=RoutingError.NO_ROUTE_TO_HOST)

    def notify(self, event):
        if event.kind in (InterfaceEventType.UP, InterfaceEventType.DOWN):
            logger.info(f"Node {self.node_id}: interface {event.interface} is {event.kind.value}.")
        else:
            verb = "added to" if event.kind is InterfaceEventType.ADD_ADDRESS else "removed from"
            logger.info(f"Node {self.node_id}: address {event.address} {verb} interface {event.interface}.")

    def print_routing_table(self, stream):
        stream.write(f"Node {self.node_id}: routing table not maintained by BlackholeRouting.\n")


def create_protocol(variant, node_id, config=None, seed=None):
    """Builds a BlackholeRouting for a ProtocolVariant (or its string value, e.g. "mitigated")."""
    if not isinstance(variant, ProtocolVariant):
        variant = ProtocolVariant(variant)
    return BlackholeRouting(node_id, config=config, variant=variant, seed=seed)
