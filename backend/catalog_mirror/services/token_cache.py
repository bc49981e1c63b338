"""
Access Token Cache - locally persisted catalog access tokens

Tokens granted by the catalog are kept in memory and written to a JSON file
only when ``flush`` is called explicitly.
"""
import json
import os
import threading
from typing import Dict, List, Optional

from ..utils.logger import get_logger
from .catalog_client import AccessTokensResult, ProductRequest

logger = get_logger('token_cache')


class AccessTokenCache:
    """Known access tokens per app and package.

    Example:
        >>> cache = AccessTokenCache('datas/access_tokens.json')
        >>> cache.load()
        >>> cache.apply(result)          # tokens granted by the catalog
        >>> cache.new_app_request(440)   # ProductRequest(id=440, access_token=...)
        >>> cache.flush()
    """

    def __init__(self, path: Optional[str] = None):
        """
        Args:
            path: JSON file backing the cache. None or empty keeps it in memory only.
        """
        self.path = path or None
        self._app_tokens: Dict[int, int] = {}
        self._package_tokens: Dict[int, int] = {}
        self._lock = threading.Lock()
        self.flush_count = 0

    def load(self) -> None:
        """Load tokens from disk. A missing file means an empty cache."""
        if not self.path or not os.path.exists(self.path):
            return

        with open(self.path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        with self._lock:
            self._app_tokens = {int(k): int(v) for k, v in data.get('apps', {}).items()}
            self._package_tokens = {int(k): int(v) for k, v in data.get('packages', {}).items()}

        logger.info(
            f"[TokenCache] Loaded {len(self._app_tokens)} app tokens and "
            f"{len(self._package_tokens)} package tokens"
        )

    def flush(self) -> None:
        """Write the cache to disk."""
        with self._lock:
            self.flush_count += 1
            if not self.path:
                return
            data = {
                'apps': {str(k): v for k, v in sorted(self._app_tokens.items())},
                'packages': {str(k): v for k, v in sorted(self._package_tokens.items())},
            }

        directory = os.path.dirname(self.path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory)

        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f)
        os.replace(tmp_path, self.path)

        logger.info(f"[TokenCache] Saved {len(data['apps'])} app tokens and {len(data['packages'])} package tokens")

    def apply(self, result: AccessTokensResult) -> int:
        """Store tokens granted by the catalog. Zero tokens are ignored.

        Returns:
            Number of new or changed tokens
        """
        updated = 0
        with self._lock:
            for tokens, granted in (
                (self._app_tokens, result.app_tokens),
                (self._package_tokens, result.package_tokens),
            ):
                for entity_id, token in granted.items():
                    if token and tokens.get(entity_id) != token:
                        tokens[entity_id] = token
                        updated += 1
        return updated

    def app_ids(self) -> List[int]:
        with self._lock:
            return list(self._app_tokens)

    def package_ids(self) -> List[int]:
        with self._lock:
            return list(self._package_tokens)

    def get_app_token(self, app_id: int) -> Optional[int]:
        with self._lock:
            return self._app_tokens.get(app_id)

    def get_package_token(self, package_id: int) -> Optional[int]:
        with self._lock:
            return self._package_tokens.get(package_id)

    def new_app_request(self, app_id: int) -> ProductRequest:
        return ProductRequest(app_id, self.get_app_token(app_id))

    def new_package_request(self, package_id: int) -> ProductRequest:
        return ProductRequest(package_id, self.get_package_token(package_id))
