"""
Port allocation for topology nodes.

Ports come from the OS (bind to port 0) and stay bound by the manager until the
owning backend is about to start the node, so two topology builds running at
the same time never receive the same port.
"""
import socket
import threading
import logging
from typing import Dict, Iterable, List, Set

from ..errors import PortAllocationError

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 32


class PortManager:
    """Manages port allocation for nodes across all topologies of the process"""

    def __init__(self, host: str = "127.0.0.1"):
        self.host = host
        self._lock = threading.Lock()
        self._claimed: Set[int] = set()
        self._reservations: Dict[int, socket.socket] = {}

    def allocate(self, label: str, kind: str = "udp") -> int:
        """Reserve a free port; the reservation holds until ``release_reservation``"""
        sock_type = socket.SOCK_DGRAM if kind == "udp" else socket.SOCK_STREAM

        with self._lock:
            for _ in range(MAX_ATTEMPTS):
                sock = socket.socket(socket.AF_INET, sock_type)
                try:
                    sock.bind((self.host, 0))
                except OSError as e:
                    sock.close()
                    raise PortAllocationError(label) from e

                port = sock.getsockname()[1]
                if port in self._claimed:
                    sock.close()
                    continue

                self._claimed.add(port)
                self._reservations[port] = sock
                return port

        raise PortAllocationError(label)

    def allocate_many(self, count: int, label: str, kind: str = "udp") -> List[int]:
        ports = []
        try:
            for _ in range(count):
                ports.append(self.allocate(label, kind))
        except PortAllocationError:
            self.free(ports)
            raise
        return ports

    def release_reservation(self, port: int) -> None:
        """Unbind a reserved port so a node process can bind it; the port stays claimed"""
        with self._lock:
            sock = self._reservations.pop(port, None)
        if sock is not None:
            sock.close()

    def free(self, ports: Iterable[int]) -> None:
        """Return ports to the OS and forget them"""
        for port in list(ports):
            self.release_reservation(port)
            with self._lock:
                self._claimed.discard(port)

    def is_claimed(self, port: int) -> bool:
        with self._lock:
            return port in self._claimed

    def is_reserved(self, port: int) -> bool:
        with self._lock:
            return port in self._reservations


_port_manager = None
_port_manager_lock = threading.Lock()


def get_port_manager() -> PortManager:
    """Get the process-wide port manager"""
    global _port_manager
    with _port_manager_lock:
        if _port_manager is None:
            _port_manager = PortManager()
        return _port_manager
