"""
认证中间件
用于保护启动同步任务的接口
"""
from functools import wraps
from flask import request, current_app
from ..utils.responses import ApiResponse


def get_current_api_key() -> str:
    """从请求头获取 API Key"""
    return request.headers.get('X-API-Key', '')


def require_admin(f):
    """
    管理员认证装饰器

    要求 X-API-Key 与 ADMIN_API_KEY 一致
    如果未配置管理员密钥，则拒绝所有请求
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        api_key = get_current_api_key()
        admin_key = current_app.config.get('ADMIN_API_KEY')

        if not admin_key:
            return ApiResponse.forbidden(
                '此操作需要管理员权限，请配置 ADMIN_API_KEY 环境变量'
            )

        if not api_key:
            return ApiResponse.unauthorized('缺少管理员 API Key')

        if api_key != admin_key:
            return ApiResponse.forbidden('无效的管理员 API Key')

        return f(*args, **kwargs)
    return decorated
