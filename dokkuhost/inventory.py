"""
Loading of the inventory file: the list of target hosts, their variables,
and the directory of public keys to install.
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional

import beartype.door
import yaml

logger = logging.getLogger(__name__)

DEFAULT_INVENTORY = "inventory.yml"

SERVER_PROVIDERS = ("digital_ocean",)
DNS_PROVIDERS = ("route53",)

ENVIRONMENT_FALLBACKS = {
    "do_api_token": "DIGITALOCEAN_TOKEN",
    "aws_access_key": "AWS_ACCESS_KEY_ID",
    "aws_secret_key": "AWS_SECRET_ACCESS_KEY",
}

REQUIRED_BY_PROVIDER = {
    "digital_ocean": ["do_api_token", "do_region", "do_image", "do_size"],
    "route53": ["aws_access_key", "aws_secret_key"],
}


class InventoryError(ValueError):
    """
    The inventory file is missing, malformed, or a host lacks a variable
    that its providers need.
    """


@dataclass(frozen=True)
class PublicKey:
    name: str
    path: Path
    content: str


@dataclass
class TargetConfig:
    """
    Variables of one target host.
    """

    name: str
    dokku_git_repo: str
    dokku_version: str
    server_provider: Optional[Literal["digital_ocean"]] = None
    dns_provider: Optional[Literal["route53"]] = None
    do_api_token: Optional[str] = field(default=None, repr=False)
    do_region: Optional[str] = None
    do_image: Optional[str] = None
    do_size: Optional[str] = None
    aws_access_key: Optional[str] = field(default=None, repr=False)
    aws_secret_key: Optional[str] = field(default=None, repr=False)
    remote_user: str = "root"
    fqdn: Optional[str] = None


@dataclass
class Inventory:
    path: Path
    targets: list[TargetConfig]
    authorized_keys: Path
    known_hosts: Path

    @property
    def public_keys(self):
        return read_public_keys(self.authorized_keys)


TARGET_FIELDS = {f.name: f for f in dataclasses.fields(TargetConfig)}


def read_public_keys(directory):
    """
    Return a :class:`PublicKey` for every non-empty file in ``directory``,
    sorted by file name. A missing directory means there are no keys.
    """

    directory = Path(directory)
    if not directory.is_dir():
        logger.warning("Authorized keys directory %s does not exist", directory)
        return []

    keys = []
    for path in sorted(directory.glob("*")):
        if not path.is_file():
            continue

        content = path.read_text().strip()
        if not content:
            continue

        keys.append(PublicKey(name=path.name, path=path, content=content))

    return keys


def parse_target(name, variables, environ=os.environ):
    variables = dict(variables)

    for key, value in variables.items():
        if key not in TARGET_FIELDS or key == "name":
            raise InventoryError(f"Host {name!r}: unknown variable {key!r}")

    if variables.get("server_provider") not in (None, *SERVER_PROVIDERS):
        raise InventoryError(
            f"Host {name!r}: unsupported server_provider "
            f"{variables['server_provider']!r}"
        )

    if variables.get("dns_provider") not in (None, *DNS_PROVIDERS):
        raise InventoryError(
            f"Host {name!r}: unsupported dns_provider {variables['dns_provider']!r}"
        )

    for key, env_name in ENVIRONMENT_FALLBACKS.items():
        if variables.get(key) is None and environ.get(env_name):
            variables[key] = environ[env_name]

    for key in ["dokku_git_repo", "dokku_version"]:
        if variables.get(key) is None:
            raise InventoryError(f"Host {name!r}: {key!r} is required")

    for provider in [variables.get("server_provider"), variables.get("dns_provider")]:
        for key in REQUIRED_BY_PROVIDER.get(provider, []):
            if variables.get(key) is None:
                raise InventoryError(
                    f"Host {name!r}: {key!r} is required by {provider!r}"
                )

    for key, value in variables.items():
        expected = TARGET_FIELDS[key].type
        if not beartype.door.is_bearable(value, expected):
            raise InventoryError(f"Host {name!r}: {key}={value!r} is not {expected}")

    return TargetConfig(name=name, **variables)


def load_inventory(path, environ=os.environ):
    """
    Read the YAML inventory at ``path``. Variables under ``defaults`` apply
    to every host and are overridden by the host's own variables. Relative
    paths are resolved against the inventory's directory.
    """

    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text()) or {}

    except FileNotFoundError:
        raise InventoryError(f"Inventory {str(path)!r} not found")

    except yaml.YAMLError as error:
        raise InventoryError(f"Inventory {str(path)!r} is not valid YAML: {error}")

    if not isinstance(data, dict):
        raise InventoryError(f"Inventory {str(path)!r} must be a mapping")

    unknown = set(data) - {"defaults", "hosts", "authorized_keys", "known_hosts"}
    if unknown:
        raise InventoryError(f"Inventory: unknown sections {sorted(unknown)!r}")

    defaults = data.get("defaults") or {}
    hosts = data.get("hosts") or {}
    if not hosts:
        raise InventoryError(f"Inventory {str(path)!r} defines no hosts")

    targets = [
        parse_target(str(name), dict(defaults, **(variables or {})), environ)
        for name, variables in hosts.items()
    ]

    base = path.parent
    authorized_keys = base / Path(data.get("authorized_keys", "authorized_keys"))
    known_hosts = base / Path(data.get("known_hosts", "~/.ssh/known_hosts")).expanduser()

    logger.debug("Loaded %d targets from %s", len(targets), path)

    return Inventory(
        path=path,
        targets=targets,
        authorized_keys=authorized_keys,
        known_hosts=known_hosts,
    )


def get_inventory_path(option=None, environ=os.environ):
    return Path(option or environ.get("DOKKUHOST_INVENTORY") or DEFAULT_INVENTORY)
