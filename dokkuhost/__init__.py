"""Provision hosts and install dokku on them."""

from .components import Component, Stack
from .inventory import Inventory, TargetConfig, load_inventory
from .lazy import Lazy, MaybeLazy, evaluate, lazy_property
from .local import run
from .places import File, LocalHost, SshHost
from .props import Prop
from .stack import SiteStack

__all__ = [
    "Component",
    "File",
    "Inventory",
    "Lazy",
    "LocalHost",
    "MaybeLazy",
    "Prop",
    "SiteStack",
    "SshHost",
    "Stack",
    "TargetConfig",
    "evaluate",
    "lazy_property",
    "load_inventory",
    "run",
]

__version__ = "0.1"
