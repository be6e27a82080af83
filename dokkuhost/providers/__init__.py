"""
Server and DNS providers. A target's ``server_provider`` and
``dns_provider`` variables are mapped to component classes here, once, when
the stack is built.
"""

from .base import ExistingHost, ServerProvisioner
from .digitalocean import DigitalOceanApi, DigitalOceanServer
from .route53 import Route53Api, Route53Records

SERVER_PROVISIONERS = {
    None: ExistingHost,
    "digital_ocean": DigitalOceanServer,
}

DNS_REGISTRARS = {
    None: None,
    "route53": Route53Records,
}


def get_server_provisioner(name) -> type[ServerProvisioner]:
    try:
        return SERVER_PROVISIONERS[name]

    except KeyError:
        raise ValueError(f"Unknown server provider {name!r}")


def get_dns_registrar(name) -> type[Route53Records] | None:
    try:
        return DNS_REGISTRARS[name]

    except KeyError:
        raise ValueError(f"Unknown DNS provider {name!r}")


__all__ = [
    "DigitalOceanApi",
    "DigitalOceanServer",
    "ExistingHost",
    "Route53Api",
    "Route53Records",
    "ServerProvisioner",
    "get_dns_registrar",
    "get_server_provisioner",
]
