"""Модуль постоянного хранилища сессии покупателя."""

from . import db
from .db import LocalStorage, StorageDecodeError, init_db

__all__ = ["db", "LocalStorage", "StorageDecodeError", "init_db"]
