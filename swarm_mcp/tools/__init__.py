"""LLM-facing tool implementations."""

from .data import download_data, upload_data
from .feeds import read_feed, update_feed
from .files import download_files, upload_file, upload_folder
from .tags import query_upload_progress
from .stamps import (
    create_postage_stamp,
    extend_postage_stamp,
    get_postage_stamp,
    list_postage_stamps,
)
from . import validators

__all__ = [
    "upload_data",
    "download_data",
    "update_feed",
    "read_feed",
    "upload_file",
    "upload_folder",
    "download_files",
    "query_upload_progress",
    "list_postage_stamps",
    "get_postage_stamp",
    "create_postage_stamp",
    "extend_postage_stamp",
    "validators",
]
