"""
Product Info Processor - records full product info responses

This is the only writer of change numbers. Each entity processed counts as
one in-flight processing unit for the backpressure gate while it is written.
"""
from ..utils.logger import get_logger
from .catalog_client import ProductInfoResult
from .sync.change_detector import EntityKind

logger = get_logger('product_info')


class ProductInfoProcessor:
    def __init__(self, store, processing_tracker):
        self.store = store
        self.processing_tracker = processing_tracker

    def process(self, result: ProductInfoResult) -> int:
        """Persist the change number of every app and package in ``result``.

        Metadata-only responses are ignored: they go to the change detector.

        Returns:
            Number of entities recorded
        """
        if result.metadata_only:
            logger.warning("[ProductInfo] Ignoring metadata-only response")
            return 0

        recorded = 0
        for kind, infos in ((EntityKind.APP, result.apps), (EntityKind.PACKAGE, result.packages)):
            for info in infos.values():
                with self.processing_tracker.track():
                    self.store.record_product_info(kind, info.id, info.change_number, info.name)
                recorded += 1

        logger.debug(f"[ProductInfo] Recorded {len(result.apps)} apps and {len(result.packages)} packages")
        return recorded
