class BoundCallbacks:
    def __init__(self, component, name):
        self.component = component
        self.attr = f"_callbacks_{name}"

    def add(self, callback):
        callbacks = self.component.__dict__.setdefault(self.attr, [])
        callbacks.append(callback)

    def invoke(self, *args):
        for callback in self.component.__dict__.get(self.attr, []):
            callback(*args)


class Callbacks:
    """
    Descriptor for a list of callbacks attached to each component instance.
    Used to trigger a step only when an earlier one changed something.
    """

    def __set_name__(self, owner, name):
        self.name = name

    def __get__(self, obj, objtype=None):
        return BoundCallbacks(obj, self.name)
