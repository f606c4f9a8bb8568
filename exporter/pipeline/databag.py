"""Per-run data store shared by the stages of one job run."""

from typing import Any


class DataBag(dict):
    """Mapping of stage name to JSON-compatible value for a single run.

    Stages add and overwrite entries but never remove them, so a later
    stage can always rely on what an earlier stage produced. Removal
    operations raise TypeError.

    Example:
        >>> bag = DataBag()
        >>> bag["get_queues"] = {"entities": []}
        >>> del bag["get_queues"]
        Traceback (most recent call last):
        ...
        TypeError: DataBag entries cannot be removed
    """

    def __delitem__(self, key: Any) -> None:
        raise TypeError("DataBag entries cannot be removed")

    def pop(self, *args: Any, **kwargs: Any) -> Any:
        raise TypeError("DataBag entries cannot be removed")

    def popitem(self) -> Any:
        raise TypeError("DataBag entries cannot be removed")

    def clear(self) -> None:
        raise TypeError("DataBag entries cannot be removed")

    def __repr__(self) -> str:
        return f"DataBag(keys={sorted(self.keys())!r})"
