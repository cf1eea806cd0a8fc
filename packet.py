from dataclasses import dataclass, field
from itertools import count

_uids = count()


@dataclass
class PacketHeader:
    source: int        # NodeId of the originator
    destination: int   # NodeId of the final receiver
    ttl: int = 64


@dataclass
class Packet:
    size: int = 1024
    timestamp: float = 0.0  # creation time, used for end-to-end delay
    uid: int = field(default_factory=lambda: next(_uids))


@dataclass
class Route:
    """What the forwarding callback needs to put a packet on the air."""
    destination: int
    source: object          # local interface address
    output_device: str
