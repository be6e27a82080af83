import logging
import re
from functools import cached_property
from typing import Any

from .props import get_instance_props

logger = logging.getLogger(__name__)


class Meta:
    def __init__(self, component, name, parent):
        self.component = component
        self.name = name
        self.parent = parent

    @cached_property
    def full_name(self):
        if self.parent is None or self.parent._meta.parent is None:
            return self.name

        return f"{self.parent._meta.full_name}.{self.name}"

    @cached_property
    def stack(self):
        return self.component if self.parent is None else self.parent._meta.stack


class Component:
    """
    Building block of a stack. A component is a node in a tree: assigning a
    component to a public attribute of another one attaches it as a child.
    Operations are applied children first, in the order they were attached.

    Subclasses declare their props in an inner ``Props`` class and add their
    children in :meth:`build`.
    """

    class Props:
        pass

    Meta = Meta

    _meta: Meta = None  # type: ignore
    props: Any

    def __init__(self, **kwargs):
        self._children = {}
        self.props = get_instance_props(self, kwargs)

    def __str__(self):
        return self._meta.full_name if self._meta else "[detached]"

    def __repr__(self):
        return f"<{type(self).__name__} {self}>"

    def __setattr__(self, name, value):
        if not name.startswith("_") and isinstance(value, Component):
            if hasattr(self, name) and name not in self._children:
                raise AttributeError(f"{self!r} already has attribute {name!r}")
            super().__setattr__(name, value)
            value._attach(self, name)
            self._children[name] = value

        else:
            super().__setattr__(name, value)

    def _attach(self, parent, name):
        if self._meta is not None:
            raise ValueError(
                f"Cannot attach {self!r} to {parent!r} because it's already attached"
            )

        self._meta = self.Meta(component=self, name=name, parent=parent)
        logger.debug("Building %r", self)
        self.build()

    def __iter__(self):
        return iter(self._children.values())

    def build(self):
        """
        Called once the component is attached to its parent. Override to add
        child components.
        """

    def add_commands(self, cli):
        """
        Called when the CLI for this component is built. Override to add
        component-specific commands to ``cli``, a
        :class:`~dokkuhost.cli.ComponentGroup`.
        """

    #: A failed step inside this component stops only this component's
    #: subtree; the operation goes on with its siblings.
    abort_scope = False

    def skip_reason(self):
        """
        For an ``abort_scope`` component: return why it must not run at
        all, or ``None``.
        """

    def aborted(self, error):
        """
        Called when a step failed inside this ``abort_scope`` component.
        """


class Stack(Component):
    """
    Root of the component tree.
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._meta = self.Meta(component=self, name="__root__", parent=None)
        self.build()


def walk(component):
    """
    Iterate depth-first over ``component`` and all its descendants, starting
    with ``component`` itself.
    """

    yield component
    for child in component:
        yield from walk(child)


def slug(name):
    """
    Turn a host name into a valid child name: ``app.example.com`` becomes
    ``app_example_com``. Dots separate path segments on the command line.
    """

    return re.sub(r"[^0-9a-zA-Z_]", "_", name)
