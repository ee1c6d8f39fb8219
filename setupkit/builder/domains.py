"""Host name helpers shared by the generator and the importer."""

from typing import Tuple


def root_domain(fqdn: str) -> str:
    """
    Reduce a host name to its registrable two-label suffix.

    ``a.b.example.com`` -> ``example.com``. A trailing dot is dropped
    first; single-label names such as ``localhost`` are returned as-is.
    """
    domain = fqdn[:-1] if fqdn.endswith(".") else fqdn
    if not domain:
        return domain

    parts = domain.split(".")
    if len(parts) < 2:
        return domain
    return ".".join(parts[-2:])


def split_host_port(host: str) -> Tuple[str, str]:
    """Split ``host[:port]`` into its parts (port may be empty)."""
    name, sep, port = host.rpartition(":")
    if sep and port.isdigit():
        return name, port
    return host, ""
