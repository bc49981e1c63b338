"""
中间件模块
"""
from .auth import require_admin, get_current_api_key

__all__ = ['require_admin', 'get_current_api_key']
