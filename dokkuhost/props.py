import beartype.door

from .lazy import Lazy, evaluate

NO_DEFAULT = object()


class Prop:
    """
    Declares a component prop. Values are type-checked with beartype when
    the component is created, or, for lazy props, when they are evaluated.

    :param type: The type the value must match.
    :param default: Value used when the prop is not given. Without a
                    default the prop is required, unless ``type`` accepts
                    ``None``.
    :param lazy: Accept a :class:`~dokkuhost.lazy.Lazy` value.
    """

    def __init__(self, type, default=NO_DEFAULT, lazy=False):
        self.type = type
        self.default = default
        self.lazy = lazy

    def check(self, instance, name, value):
        if not beartype.door.is_bearable(value, self.type):
            raise TypeError(f"Prop {name!r}: {value!r} is not {self.type!r}")

        return value

    def wrap_lazy(self, instance, name, lazy_value):
        def get_checked_value():
            value = evaluate(lazy_value)

            if not beartype.door.is_bearable(value, self.type):
                raise TypeError(
                    f"Lazy prop {name!r} for {instance!r}: "
                    f"{value!r} is not {self.type!r}"
                )

            return value

        return Lazy(get_checked_value)


def get_instance_props(instance, kwargs):
    kwargs = dict(kwargs)
    values = {}

    for cls in reversed(type(instance).__mro__):
        props_cls = cls.__dict__.get("Props")
        if props_cls is None:
            continue

        for name, prop in vars(props_cls).items():
            if isinstance(prop, Prop):
                values[name] = prop

    props = {}
    for name, prop in values.items():
        value = kwargs.pop(name, prop.default)

        if prop.lazy and isinstance(value, Lazy):
            props[name] = prop.wrap_lazy(instance, name, value)
            continue

        if value is NO_DEFAULT:
            if not beartype.door.is_bearable(None, prop.type):
                raise TypeError(f"Required prop {name!r} is missing")

            value = None

        props[name] = prop.check(instance, name, value)

    for name in kwargs:
        raise TypeError(f"{name!r} is an invalid prop for {instance!r}")

    return InstanceProps(**props)


class InstanceProps:
    """
    Holds the prop values of a component, as attributes. Found on the
    ``props`` attribute of every :class:`~dokkuhost.components.Component`.
    """

    def __init__(self, **kwargs):
        for name, value in kwargs.items():
            setattr(self, name, value)

    def __repr__(self):
        return f"<{type(self).__name__}: {vars(self)}>"
