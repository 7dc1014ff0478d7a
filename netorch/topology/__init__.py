"""
Topology - node descriptors, port allocation and node configuration payloads
"""
from .builder import Topology, TopologyBuilder, TopologyConfig
from .ports import PortManager, get_port_manager

__all__ = ['Topology', 'TopologyBuilder', 'TopologyConfig', 'PortManager', 'get_port_manager']
