from collections import defaultdict
from typing import Callable, DefaultDict, Dict, Hashable, Iterable, List, Sequence, TypeVar

T = TypeVar("T")
V = TypeVar("V", bound=Hashable)


def group_by(items: Sequence[T], get_values: Callable[[T], Iterable[V]]) -> Dict[V, List[T]]:
    """
    group rows by their join value(s), keeping the order of `items` inside each group.

    `get_values` returns every value a row belongs to, a row fetched through
    a collection association can belong to several keys.
    """
    dct: DefaultDict[V, List[T]] = defaultdict(list)
    for item in items:
        for value in get_values(item):
            dct[value].append(item)
    return dict(dct)
