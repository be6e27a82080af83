from functools import cached_property, wraps
from typing import TypeVar


class NotAvailable(KeyError):
    """
    Raised when a :class:`Lazy` value depends on something that does not
    exist yet, e.g. the IP address of a droplet that a dry run did not
    create.
    """


T = TypeVar("T")


class Lazy[T]:
    """
    A value that is computed later, when the provisioning step that produces
    it has run. The wrapped call is made on first access to :attr:`value`
    and its result is cached.
    """

    def __init__(self, func, *args, **kwargs):
        self.func = func
        self.args = args
        self.kwargs = kwargs

    def __repr__(self):
        return f"<Lazy {getattr(self.func, '__qualname__', self.func)!r}>"

    @cached_property
    def value(self) -> T:
        return self.func(*self.args, **self.kwargs)


MaybeLazy = Lazy[T] | T


def evaluate(ob: MaybeLazy[T]) -> T:
    """
    Return the value of ``ob``. :class:`Lazy` objects are evaluated; lists
    and dicts are copied with their members evaluated; anything else is
    returned as-is.
    """

    if isinstance(ob, Lazy):
        return ob.value

    if isinstance(ob, dict):
        return {key: evaluate(value) for key, value in ob.items()}  # type: ignore

    if isinstance(ob, list):
        return [evaluate(item) for item in ob]  # type: ignore

    return ob


def lazy_property(func):
    """
    Like :class:`property`, but the attribute is a :class:`Lazy` that calls
    ``func`` when evaluated. The same Lazy object is returned on every
    access, so the value is computed at most once per instance.
    """

    @cached_property
    @wraps(func)
    def getter(self):
        return Lazy(func, self)

    return getter
