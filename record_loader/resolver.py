import os
import asyncio
from inspect import iscoroutine, signature
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from pydantic import BaseModel

import record_loader.constant as const
import record_loader.utils.conversion as conversion_util
from record_loader.coordinator import BatchCoordinator
from record_loader.exceptions import MissingContextError


T = TypeVar("T")


def _get_resolve_methods(node: BaseModel) -> List[Tuple[str, Callable]]:
    methods = []
    for field in node.__class__.model_fields.keys():
        method = getattr(node, f'{const.RESOLVE_PREFIX}{field}', None)
        if method is not None and callable(method):
            methods.append((field, method))
    return methods


def _get_object_fields(node: BaseModel, resolved_fields) -> List[Any]:
    values = []
    for field in node.__class__.model_fields.keys():
        if field in resolved_fields:
            continue
        value = getattr(node, field, None)
        if isinstance(value, BaseModel) or (isinstance(value, (list, tuple)) and value):
            values.append(value)
    return values


class Resolver:
    """
    walk pydantic objects, run `resolve_<field>` methods and assign their results.

    loaders created inside resolve methods share one BatchCoordinator scope
    per `resolve()` call:

        class PostSchema(BaseModel):
            id: int
            latest_comment: Optional[CommentSchema] = None

            def resolve_latest_comment(self):
                loader = RecordLoader.loader(Comment, column='post_id')
                return then(loader.load(self.id), last_or_none)

        posts = await Resolver(data_source=source).resolve(posts)
    """

    def __init__(
            self,
            data_source=None,
            coordinator: Optional[BatchCoordinator] = None,
            context: Optional[Dict[str, Any]] = None,
            debug=False,
            enable_from_attribute_in_type_adapter=False,
            ):
        self.debug = debug or os.getenv(const.DEBUG_ENV, "false").lower() == "true"

        # in pydantic v2, type adapter parses ORM objects only with from_attributes=True
        self.enable_from_attribute_in_type_adapter = enable_from_attribute_in_type_adapter \
            or os.getenv(const.ENABLE_FROM_ATTRIBUTE_ENV, "false").lower() == "true"

        if coordinator and not coordinator.auto_dispatch:
            raise AttributeError('Resolver requires a coordinator with auto_dispatch=True')

        self.data_source = data_source
        self.coordinator = coordinator
        self.context = MappingProxyType(context) if context else None

    def _execute_resolve_method(self, field: str, method: Callable, parent: object):
        params = {}
        parameters = signature(method).parameters

        if 'context' in parameters:
            if self.context is None:
                raise MissingContextError(f'{field}: context is missing')
            params['context'] = self.context
        if 'parent' in parameters:
            params['parent'] = parent

        return method(**params)

    async def _execute_resolve_method_field(
            self,
            node: BaseModel,
            field: str,
            method: Callable,
            parent: object):
        val = self._execute_resolve_method(field, method, parent)

        while iscoroutine(val) or asyncio.isfuture(val):
            val = await val

        val = conversion_util.try_parse_data_to_target_field_type(
            node,
            field,
            val,
            self.enable_from_attribute_in_type_adapter)

        val = await self._traverse(val, node)
        setattr(node, field, val)

    async def _traverse(self, node: T, parent: object) -> T:
        if isinstance(node, (list, tuple)):
            await asyncio.gather(*[self._traverse(t, parent) for t in node])
            return node

        if not isinstance(node, BaseModel):
            return node

        tasks = []
        resolve_methods = _get_resolve_methods(node)
        for field, method in resolve_methods:
            tasks.append(self._execute_resolve_method_field(node, field, method, parent))

        resolved_fields = {field for field, _ in resolve_methods}
        for attr_object in _get_object_fields(node, resolved_fields):
            tasks.append(self._traverse(attr_object, node))

        await asyncio.gather(*tasks)
        return node

    async def resolve(self, node: T) -> T:
        if isinstance(node, list) and node == []: return node

        coordinator = self.coordinator or BatchCoordinator(
            data_source=self.data_source,
            debug=self.debug)

        with coordinator.scope():
            await self._traverse(node, None)

            if self.debug:
                coordinator.report()

        return node
