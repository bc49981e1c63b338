"""
Enumeration Strategy Selector - which app and package ids a run targets

All returned lists are strictly descending: identifier spaces grow over
time, so the newest entities are requested first.
"""
from enum import Enum
from typing import List, Tuple

from ...utils.logger import get_logger

logger = get_logger('enumeration')

ENUMERATE_APP_PADDING = 50000
ENUMERATE_PACKAGE_PADDING = 10000


class RunMode(Enum):
    """Operating mode of a full run."""

    ENUMERATE = 'enumerate'
    TOKENS_ONLY = 'tokens_only'
    PACKAGES_NORMAL = 'packages_normal'
    WITH_FORCED_DEPOTS = 'with_forced_depots'
    NORMAL_USING_METADATA = 'normal_using_metadata'
    FULL_NORMAL = 'full_normal'

    @classmethod
    def parse(cls, value: str) -> 'RunMode':
        """Parse a mode from its value ("tokens_only") or CamelCase name ("TokensOnly")."""
        text = value.strip()
        snake = ''.join(
            f'_{ch.lower()}' if ch.isupper() and i > 0 and text[i - 1] != '_' else ch.lower()
            for i, ch in enumerate(text)
        ).replace('-', '_')
        for candidate in (text.lower(), snake):
            try:
                return cls(candidate)
            except ValueError:
                continue
        raise ValueError(f"Unknown run mode: {value!r}")


def descending_range(stop: int) -> List[int]:
    """[stop - 1, ..., 0]"""
    return list(range(stop - 1, -1, -1))


def select_targets(
    mode: RunMode,
    store,
    token_cache,
    app_padding: int = ENUMERATE_APP_PADDING,
    package_padding: int = ENUMERATE_PACKAGE_PADDING,
) -> Tuple[List[int], List[int]]:
    """Compute the app and package ids to process for ``mode``.

    Store read errors are not handled here; they abort the invocation.

    Args:
        mode: Run mode
        store: Catalog store
        token_cache: Access token cache
        app_padding: Ids past the highest known app covered by ENUMERATE
        package_padding: Ids past the highest known package covered by ENUMERATE

    Returns:
        (app_ids, package_ids), both descending without duplicates
    """
    if mode == RunMode.ENUMERATE:
        last_app_id = app_padding + store.get_highest_app_id()
        last_package_id = package_padding + store.get_highest_package_id()

        logger.info(f"[FullRun] Will enumerate {last_app_id} apps and {last_package_id} packages")

        return descending_range(last_app_id), descending_range(last_package_id)

    if mode == RunMode.TOKENS_ONLY:
        apps = sorted(set(token_cache.app_ids()), reverse=True)
        packages = sorted(set(token_cache.package_ids()), reverse=True)

        logger.info(f"[FullRun] Enumerating {len(apps)} apps and {len(packages)} packages that have a token")

        return apps, packages

    logger.info("[FullRun] Doing a full run on all apps and packages in the database")

    if mode == RunMode.PACKAGES_NORMAL:
        apps = []
    else:
        apps = store.get_all_app_ids()

    packages = store.get_all_package_ids()

    return apps, packages
