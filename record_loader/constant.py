RESOLVE_PREFIX = 'resolve_'

DEBUG_ENV = 'RECORD_LOADER_DEBUG'
ENABLE_FROM_ATTRIBUTE_ENV = 'RECORD_LOADER_ENABLE_FROM_ATTRIBUTE'
LOG_LEVEL_ENV = 'RECORD_LOADER_LOG_LEVEL'

COORDINATOR_CONTEXT_VAR = 'record_loader_coordinator'
