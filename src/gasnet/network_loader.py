# network_loader.py
# Build a Network from a JSON description (or the equivalent dict) through the
# component registry.

import json
import logging
from typing import Any, Dict

from . import boundaries, compressor, flow_elements, sensors, sources, volumes  # noqa: F401  (registration)
from .component import build, registered_types
from .exceptions import TopologyError
from .material import MaterialService
from .network import Network
from .species import load_species_table

logger = logging.getLogger(__name__)


def build_network(config: Dict[str, Any], material: MaterialService = None) -> Network:
    """
    Build a Network from a dict.

    Format:
      species_table: optional path to a species table JSON file
      components: [{type, name, params: {...}}, ...]
      connections: [["pipe1.B", "valve.A"], ...]   (two or more ports per entry)
      pipe_lines: optional [{name, length, n_segments, params: {...}}, ...]

    Component parameters are passed to the constructor as keyword arguments;
    'segmented' pipe lines expose their ends as "<name>_0.A" and "<name>_<n-1>.B".
    """
    if material is None:
        table_path = config.get("species_table")
        material = MaterialService(load_species_table(table_path)) if table_path else None
    net = Network(material)

    for rec in config.get("components", []):
        if "type" not in rec or "name" not in rec:
            raise TopologyError(f"Component entry needs 'type' and 'name': {rec}")
        if rec["type"] not in registered_types():
            raise TopologyError(f"Unknown component type '{rec['type']}'. Registered: {registered_types()}")
        params = dict(rec.get("params", {}))
        net.add(build(rec["type"], rec["name"], material=net.material, **params))

    for rec in config.get("pipe_lines", []):
        net.add_pipe_line(rec["name"], rec["length"], rec["n_segments"], **rec.get("params", {}))

    for refs in config.get("connections", []):
        net.connect(*refs)

    logger.info(f"Loaded network: {len(net.components)} components, "
                f"{len(config.get('connections', []))} connections")
    return net


def load_network(path: str, material: MaterialService = None) -> Network:
    """Load a Network from a JSON file (see build_network for the format)."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return build_network(data, material)
