"""Durable proxy record storage."""

from auto_proxy.storage.records import JsonRecordStore, RecordStore

__all__ = ["JsonRecordStore", "RecordStore"]
