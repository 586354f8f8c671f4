"""Free host port discovery for NAT port forwarding."""

from __future__ import annotations

import random
import socket
import threading

from vboxctl.constants import FORWARD_HOST_ADDRESS, PORT_RANGE_MAX, PORT_RANGE_MIN
from vboxctl.exceptions import PortExhaustedError, ValidationError
from vboxctl.utils import log

# Held from probing until the forwarding rule is registered, so threads in
# this process never hand out the same port twice.
allocation_lock = threading.Lock()


def port_is_free(port: int, host: str = FORWARD_HOST_ADDRESS) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def find_free_port(
    low: int = PORT_RANGE_MIN,
    high: int = PORT_RANGE_MAX,
    host: str = FORWARD_HOST_ADDRESS,
) -> int:
    """Return a port in ``[low, high]`` that could be bound at the time of probing.

    The socket is released immediately; nothing reserves the port afterwards.
    """
    if low < 1 or high > 65535 or low > high:
        raise ValidationError(f"Invalid port range {low}-{high}")
    candidates = list(range(low, high + 1))
    random.shuffle(candidates)
    for port in candidates:
        if port_is_free(port, host):
            log("DEBUG", f"Selected free port {port} on {host}")
            return port
    raise PortExhaustedError(f"No free TCP port on {host} in range {low}-{high}")
