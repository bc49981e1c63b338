"""
工具模块
"""
from .responses import success_response, ApiResponse
from .logger import setup_logger, get_logger

__all__ = [
    'success_response',
    'ApiResponse',
    'setup_logger',
    'get_logger',
]
