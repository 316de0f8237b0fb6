from typing import Any
from pydantic import BaseModel, ConfigDict, ValidationError, TypeAdapter
from record_loader.utils.logger import get_logger

logger = get_logger(__name__)


class TypeAdapterManager:
    adapters = {}
    key_adapters = {}

    @classmethod
    def get(cls, type):
        adapter = cls.adapters.get(type)
        if adapter:
            return adapter
        else:
            new_adapter = TypeAdapter(type)
            cls.adapters[type] = new_adapter
            return new_adapter

    @classmethod
    def get_key_adapter(cls, type):
        """adapter for loader keys, str columns also accept numbers (1 -> "1")"""
        adapter = cls.key_adapters.get(type)
        if adapter is None:
            config = ConfigDict(coerce_numbers_to_str=True) if type is str else None
            adapter = TypeAdapter(type, config=config)
            cls.key_adapters[type] = adapter
        return adapter


def cast_value(value_type, value):
    """
    normalize a raw key into the column's python type, in lax mode:

    cast_value(int, '1') == 1
    cast_value(int, 1.0) == 1
    cast_value(str, 1) == "1"

    raises pydantic.ValidationError if value can't be converted
    """
    if value_type is Any or value_type is object:
        return value
    return TypeAdapterManager.get_key_adapter(value_type).validate_python(value)


def try_parse_data_to_target_field_type(
        target: object,
        field_name: str,
        data,
        enable_from_attribute=False):
    """
    parse resolved value into the annotation of target field
    1. get type of target field
    2. parse
    """
    field_type = None

    # from_attribute by default is None
    # if set False it will fail when dealing with namedtuple
    _enable_from_attribute = True if enable_from_attribute else None

    if isinstance(target, BaseModel):
        _fields = target.__class__.model_fields
        field_type = _fields[field_name].annotation

        if data is None and not _fields[field_name].is_required():
            return data

    if field_type:
        try:
            adapter = TypeAdapterManager.get(field_type)
            return adapter.validate_python(data, from_attributes=_enable_from_attribute)
        except ValidationError as e:
            logger.warning(f'type mismatch, pls check the return type for "{field_name}", expected: {field_type}')
            raise e
    else:
        return data  #noqa
