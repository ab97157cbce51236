"""Centralized logging configuration with correlation and task ID support."""

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional
from pythonjsonlogger import jsonlogger

correlation_id_var: ContextVar[str] = ContextVar('correlation_id', default='')
task_id_var: ContextVar[str] = ContextVar('task_id', default='')


class ContextFilter(logging.Filter):
    """Adds correlation_id and task_id to all log records"""

    def filter(self, record):
        record.correlation_id = correlation_id_var.get('')
        # An explicit extra={"task_id": ...} wins over the bound context
        if not getattr(record, 'task_id', ''):
            record.task_id = task_id_var.get('')
        return True


def setup_logging(service_name: str, level: Optional[str] = None) -> None:
    """Sets up JSON logging on stdout"""
    logger = logging.getLogger()
    logger.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())
    logger.handlers = []

    json_handler = logging.StreamHandler(sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        '%(asctime)s %(name)s %(levelname)s %(correlation_id)s %(task_id)s %(message)s',
        rename_fields={
            'asctime': 'timestamp',
            'name': 'logger',
            'levelname': 'level',
        }
    )

    json_handler.setFormatter(formatter)
    json_handler.addFilter(ContextFilter())
    logger.addHandler(json_handler)
    logging.info(f"{service_name} logging configured", extra={"service": service_name})


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


@contextmanager
def task_context(task_id: str) -> Iterator[None]:
    """Binds task_id to log records emitted inside the block"""
    token = task_id_var.set(task_id)
    try:
        yield
    finally:
        task_id_var.reset(token)
