class RecordLoaderError(Exception):
    pass

class KeyCastError(RecordLoaderError, TypeError):
    def __init__(self, key, value_type, loader_name: str):
        self.key = key
        self.value_type = value_type
        super().__init__(f'{loader_name}: can not cast key {key!r} to {getattr(value_type, "__name__", value_type)}')

class AssociationResolutionError(RecordLoaderError):
    def __init__(self, message: str, segment: str):
        self.segment = segment
        super().__init__(message)

class DataSourceError(RecordLoaderError):
    pass

class MissingCoordinatorError(RecordLoaderError):
    pass

class MissingDataSourceError(RecordLoaderError):
    pass

class MissingContextError(RecordLoaderError):
    pass
