"""vbox-vm-runner package."""

__all__ = [
    "cli",
    "config",
    "constants",
    "exceptions",
    "injector",
    "machine_readable",
    "models",
    "network",
    "ports",
    "provision",
    "utils",
    "vm",
]
