"""Exception kinds raised by the intersection scheduler and its driver."""


class InvalidArgument(ValueError):
    """A call was rejected because one of its arguments is out of range or missing."""


class EmptyQueue(IndexError):
    """Dequeue or peek attempted on an empty lane queue."""
