"""File handling utilities"""
import logging
import os
import tempfile
import time

from fastapi import HTTPException

logger = logging.getLogger("medicab.app")


def write_temp_file(prefix: str, suffix: str, content: str) -> str:
    """Write export content to a fresh file in the system temp directory and return its path"""
    try:
        fd, file_path = tempfile.mkstemp(prefix=prefix, suffix=suffix)
        with os.fdopen(fd, "w", encoding="utf-8") as buffer:
            buffer.write(content)
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to write export file: {str(e)}")
    return file_path


def remove_file_later(file_path: str, delay: float):
    """Delete a temporary file once the response has been sent"""
    if delay > 0:
        time.sleep(delay)
    try:
        os.remove(file_path)
        logger.info(f"Temp file cleaned up: {file_path}")
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(f"Error deleting temp file {file_path}: {e}")


def get_file_info(file_path: str) -> dict:
    """Get file information"""
    try:
        stat = os.stat(file_path)
        return {
            "size": stat.st_size,
            "created": stat.st_ctime,
            "modified": stat.st_mtime
        }
    except Exception:
        return {"size": 0, "created": None, "modified": None}
