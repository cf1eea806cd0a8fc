"""
Configuration for the blackhole routing protocol and the host simulation.

Defaults mirror the reference scenario: 10 static nodes on a 50 m grid, a CBR
flow from node 1 to the last node at 128 packets/s for 50 s, and trust scores
exported every 5 s.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional, Union

import yaml

MITIGATED_DROP_PROBABILITY = 0.05
UNMITIGATED_DROP_PROBABILITY = 1.0


@dataclass
class ProtocolConfig:
    """Per-node settings handed to a routing protocol when it is attached."""
    drop_probability: Optional[float] = None  # None: the variant's default
    total_nodes: int = 0


@dataclass
class SimulationConfig:
    num_nodes: int = 10
    grid_width: int = 10
    spacing: float = 50.0        # metres between grid positions
    radio_range: float = 60.0    # metres; only adjacent grid nodes can hear each other
    link_delay: float = 0.002    # seconds per hop
    sim_time: float = 50.0
    traffic_rate: int = 128      # packets per second
    packet_size: int = 1024      # bytes
    source: int = 1
    sink: Optional[int] = None   # defaults to the last node
    blackhole_nodes: List[int] = field(default_factory=lambda: [5])
    drop_probability: float = 0.9
    trust_log_interval: float = 5.0
    trust_log_path: str = "trust_scores.csv"
    log_level: str = "INFO"
    seed: int = 42

    def sink_node(self) -> int:
        return self.sink if self.sink is not None else self.num_nodes - 1


def load_config(config_path: Union[str, Path]) -> SimulationConfig:
    """
    Load a SimulationConfig from a YAML file.

    Raises:
        FileNotFoundError: the file does not exist
        ValueError: wrong suffix, or keys that SimulationConfig does not know
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    if config_path.suffix not in ['.yaml', '.yml']:
        raise ValueError(f"Unsupported config format: {config_path.suffix}")

    with open(config_path, 'r') as f:
        raw = yaml.safe_load(f) or {}

    known = {f.name for f in fields(SimulationConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

    return SimulationConfig(**raw)
