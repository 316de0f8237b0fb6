from dataclasses import dataclass
from typing import Any, Hashable, List, Mapping, Optional, Protocol, Sequence, Tuple, runtime_checkable


@dataclass(frozen=True)
class ColumnPath:
    """
    resolved description of the column a loader groups rows by.

    direct column:

        ColumnPath(name='post_id', value_type=int, attr_fields=('post_id',))

    association path, the join value is read by following the object graph:

        ColumnPath(name='posts.id', value_type=int, attr_fields=('post', 'id'),
                   association='post', association_model=Post)
    """
    name: str
    value_type: Any
    attr_fields: Tuple[str, ...]
    association: Optional[str] = None
    association_model: Optional[type] = None

    @property
    def is_association(self) -> bool:
        return self.association is not None

    def extract(self, row: object) -> List[Hashable]:
        values = [row]
        for attr_field in self.attr_fields:
            next_values = []
            for value in values:
                if value is None:
                    continue
                attr = getattr(value, attr_field)
                if isinstance(attr, (list, tuple, set)):
                    next_values.extend(attr)
                else:
                    next_values.append(attr)
            values = next_values
        return [v for v in values if v is not None]


@runtime_checkable
class DataSource(Protocol):
    def resolve_column(self, model: type, column: Optional[str]) -> ColumnPath:
        """
        describe `column` of `model`, None means primary key.
        raise AssociationResolutionError if an association segment is unknown
        """
        ...

    async def find_rows_where(
            self,
            model: type,
            column: ColumnPath,
            keys: Sequence[Hashable],
            where: Mapping[str, Any]) -> Sequence[Any]:
        """fetch rows of model whose column value is in keys, narrowed by where"""
        ...
