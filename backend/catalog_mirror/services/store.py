"""
Catalog Store - queries over the mirrored apps and packages

Every read failure is raised as StoreReadError, which aborts the running
sync invocation.
"""
from datetime import datetime
from functools import wraps
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import App, Package, PackageApp
from ..utils.logger import get_logger
from .sync.batching import split
from .sync.change_detector import EntityKind
from .sync.exceptions import StoreReadError

logger = get_logger('store')

DEFAULT_APP_ID_CEILING = 2000000
# Ids per IN clause, below the SQLite bound variable limit
CHANGE_NUMBER_QUERY_CHUNK = 900


def _store_read(description: str):
    """Wrap a query so database errors surface as StoreReadError."""
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except SQLAlchemyError as e:
                logger.error(f"[Store] Failed to read {description}: {e}")
                raise StoreReadError(f"Failed to read {description}") from e
        return decorated
    return decorator


class CatalogStore:
    """Read access (and change number recording) for the catalog tables.

    Id lists are returned in descending order.
    """

    def __init__(self, app_id_ceiling: int = DEFAULT_APP_ID_CEILING):
        """
        Args:
            app_id_ceiling: App ids at or above this are ignored by get_highest_app_id
        """
        self.app_id_ceiling = app_id_ceiling

    @_store_read('highest app id')
    def get_highest_app_id(self) -> int:
        value = db.session.query(db.func.max(App.app_id)).filter(
            App.app_id < self.app_id_ceiling
        ).scalar()
        return value or 0

    @_store_read('highest package id')
    def get_highest_package_id(self) -> int:
        value = db.session.query(db.func.max(Package.package_id)).scalar()
        return value or 0

    @_store_read('app ids')
    def get_all_app_ids(self) -> List[int]:
        """Persisted app ids plus app ids referenced as package contents."""
        app_ids = {row[0] for row in db.session.query(App.app_id)}
        app_ids.update(self._package_content_app_ids())
        return sorted(app_ids, reverse=True)

    @_store_read('package content app ids')
    def get_package_content_app_ids(self) -> List[int]:
        return sorted(self._package_content_app_ids(), reverse=True)

    def _package_content_app_ids(self) -> set:
        rows = db.session.query(PackageApp.app_id).filter(
            PackageApp.type == PackageApp.TYPE_APP
        ).distinct()
        return {row[0] for row in rows}

    @_store_read('package ids')
    def get_all_package_ids(self) -> List[int]:
        rows = db.session.query(Package.package_id).order_by(Package.package_id.desc())
        return [row[0] for row in rows]

    @_store_read('change numbers')
    def get_change_numbers(self, kind: EntityKind, ids: Iterable[int]) -> Dict[int, int]:
        """Persisted change numbers for ``ids``; never-seen entities are omitted."""
        ids = list(ids)
        if not ids:
            return {}

        model, id_column = self._model_for(kind)
        change_numbers = {}
        for chunk in split(ids, CHANGE_NUMBER_QUERY_CHUNK):
            rows = db.session.query(id_column, model.change_number).filter(
                id_column.in_(chunk),
                model.change_number.isnot(None)
            )
            change_numbers.update((entity_id, change_number) for entity_id, change_number in rows)
        return change_numbers

    def record_product_info(self, kind: EntityKind, entity_id: int, change_number: int,
                            name: Optional[str] = None) -> None:
        """Insert or update one entity with its latest change number."""
        model, _ = self._model_for(kind)
        entity = db.session.get(model, entity_id)
        if entity is None:
            entity = model(**{self._pk_name(kind): entity_id})
            db.session.add(entity)

        entity.change_number = change_number
        entity.last_updated = datetime.utcnow()
        if name:
            entity.name = name

        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

    @staticmethod
    def _model_for(kind: EntityKind):
        if kind is EntityKind.APP:
            return App, App.app_id
        return Package, Package.package_id

    @staticmethod
    def _pk_name(kind: EntityKind) -> str:
        return 'app_id' if kind is EntityKind.APP else 'package_id'
