"""
同步控制 API
"""
from flask import Blueprint, request

from ..middleware.auth import require_admin
from ..services.runtime import get_sync_runtime
from ..services.sync.exceptions import StoreReadError
from ..utils.logger import get_logger
from ..utils.responses import ApiResponse, success_response
from ..utils.validators import validate_ids_list, validate_run_mode

sync_bp = Blueprint('sync', __name__)
logger = get_logger('api.sync')

MAX_TOKEN_REQUEST_IDS = 10000


def _service_or_error():
    """返回 (service, None)；未配置目录客户端时返回 (None, 错误响应)"""
    service = get_sync_runtime().service
    if service.catalog_client is None:
        return None, ApiResponse.unavailable(
            '未配置目录客户端，请设置 CATALOG_CLIENT_FACTORY',
            'CATALOG_CLIENT_UNAVAILABLE'
        )
    return service, None


@sync_bp.route('/sync/status', methods=['GET'])
def get_sync_status():
    """
    获取当前负载计数、运行中的任务和最近一次运行的摘要
    """
    service = get_sync_runtime().service
    return success_response(service.get_status())


@sync_bp.route('/sync/full', methods=['POST'])
@require_admin
def start_full_run():
    """
    启动全量同步

    Request Body:
        - mode: 运行模式（默认 "full_normal"）
    """
    data = request.get_json(silent=True) or {}

    is_valid, error_msg, mode = validate_run_mode(data.get('mode'))
    if not is_valid:
        return ApiResponse.validation_error(error_msg)

    service, error = _service_or_error()
    if error:
        return error

    try:
        started = service.perform_sync(mode)
    except StoreReadError as e:
        logger.error(f"枚举 ID 时读取数据库失败，全量同步中止: {e}")
        return ApiResponse.server_error('读取目录数据失败')

    if not started:
        return ApiResponse.conflict('已有同步任务正在进行', 'SYNC_IN_PROGRESS')

    logger.info(f"全量同步已启动，模式: {mode.value}")
    return ApiResponse.accepted({'mode': mode.value}, '全量同步已启动')


@sync_bp.route('/sync/metadata', methods=['POST'])
@require_admin
def start_metadata_run():
    """
    对所有已知应用和包启动仅元数据同步
    """
    service, error = _service_or_error()
    if error:
        return error

    if not service.start_metadata_run():
        return ApiResponse.conflict('已有元数据同步正在进行', 'SYNC_IN_PROGRESS')

    logger.info("元数据同步已启动")
    return ApiResponse.accepted(message='元数据同步已启动')


@sync_bp.route('/sync/tokens', methods=['POST'])
@require_admin
def request_tokens():
    """
    为指定 ID 请求访问令牌（单个任务）

    Request Body:
        - app_ids: 应用 ID 列表
        - package_ids: 包 ID 列表
    """
    data = request.get_json(silent=True) or {}

    is_valid, error_msg, app_ids = validate_ids_list(
        data.get('app_ids'), MAX_TOKEN_REQUEST_IDS, 'app_ids', allow_empty=True
    )
    if not is_valid:
        return ApiResponse.validation_error(error_msg)

    is_valid, error_msg, package_ids = validate_ids_list(
        data.get('package_ids'), MAX_TOKEN_REQUEST_IDS, 'package_ids', allow_empty=True
    )
    if not is_valid:
        return ApiResponse.validation_error(error_msg)

    if not app_ids and not package_ids:
        return ApiResponse.validation_error('app_ids 和 package_ids 不能同时为空')

    service, error = _service_or_error()
    if error:
        return error

    token_request = service.request_tokens(app_ids, package_ids)
    return ApiResponse.accepted({
        'app_ids': token_request.app_ids,
        'package_ids': token_request.package_ids,
    }, '令牌请求已提交')
