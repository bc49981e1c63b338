"""
输入验证工具
"""
from typing import List, Tuple, Optional, Any

from ..services.sync.enumeration import RunMode

# 目录 ID 为无符号 32 位整数
MAX_ENTITY_ID = 2 ** 32 - 1


def _parse_entity_id(id_val: Any) -> Optional[int]:
    """只接受整数或纯数字字符串，浮点数和布尔值返回 None"""
    if isinstance(id_val, bool):
        return None
    if isinstance(id_val, int):
        return id_val
    if isinstance(id_val, str):
        stripped = id_val.strip()
        if stripped.isdigit():
            return int(stripped)
    return None


def validate_ids_list(
    ids: Any,
    max_count: int = 10000,
    field_name: str = 'IDs',
    allow_empty: bool = False
) -> Tuple[bool, Optional[str], List[int]]:
    """
    验证目录实体 ID 列表

    Args:
        ids: 请求体中的原始列表
        max_count: 最大允许数量
        field_name: 字段名称（用于错误消息）
        allow_empty: 是否允许缺省或空列表

    Returns:
        (is_valid, error_message, cleaned_ids)
    """
    if not ids:
        if allow_empty and (ids is None or isinstance(ids, list)):
            return True, None, []
        return False, f'{field_name} 不能为空', []

    if not isinstance(ids, list):
        return False, f'{field_name} 必须是数组', []

    if len(ids) > max_count:
        return False, f'{field_name} 数量不能超过 {max_count} 个', []

    # 去重并保持原有顺序
    cleaned_ids = []
    seen = set()
    for i, id_val in enumerate(ids):
        cleaned_id = _parse_entity_id(id_val)
        if cleaned_id is None:
            return False, f'{field_name}[{i}] 不是有效的整数', []
        if cleaned_id < 0 or cleaned_id > MAX_ENTITY_ID:
            return False, f'{field_name}[{i}] 超出有效范围', []
        if cleaned_id not in seen:
            seen.add(cleaned_id)
            cleaned_ids.append(cleaned_id)

    return True, None, cleaned_ids


def validate_run_mode(mode: Any) -> Tuple[bool, Optional[str], Optional[RunMode]]:
    """
    验证运行模式

    Args:
        mode: 运行模式名称，例如 "full_normal" 或 "TokensOnly"

    Returns:
        (is_valid, error_message, run_mode)
    """
    if not mode:
        return True, None, RunMode.FULL_NORMAL

    if not isinstance(mode, str):
        return False, '运行模式必须是字符串', None

    try:
        return True, None, RunMode.parse(mode)
    except ValueError:
        valid_modes = [m.value for m in RunMode]
        return False, f"无效的运行模式，可选值: {valid_modes}", None
