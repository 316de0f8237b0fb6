import os
import logging

import record_loader.constant as const

ROOT_LOGGER = 'record_loader'


def _setup_root():
    """one handler on the package logger, every module logger propagates to it"""
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s"))
        root.addHandler(handler)
        root.setLevel(os.getenv(const.LOG_LEVEL_ENV, 'INFO').upper())
    return root


def get_logger(name: str):
    _setup_root()
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + '.'):
        name = f'{ROOT_LOGGER}.{name}'
    return logging.getLogger(name)
