"""
Catalog client contract and request/response payloads

The client that talks to the remote catalog service is supplied by the host
(see ``CATALOG_CLIENT_FACTORY``); this module only fixes its interface and
the payloads exchanged with it.
"""
import importlib
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Set


@dataclass(frozen=True)
class ProductRequest:
    """One entity of a product info request, with its access token if known."""

    id: int
    access_token: Optional[int] = None


@dataclass
class TokenRequest:
    """Payload of a "request access tokens" job; also its correlation metadata."""

    app_ids: List[int] = field(default_factory=list)
    package_ids: List[int] = field(default_factory=list)

    def __post_init__(self):
        if not self.app_ids and not self.package_ids:
            raise ValueError("A token request needs at least one app or package id")


@dataclass
class ProductInfoRequest:
    """Payload of a "request product info" job."""

    app_requests: List[ProductRequest] = field(default_factory=list)
    package_requests: List[ProductRequest] = field(default_factory=list)
    metadata_only: bool = False


@dataclass
class AccessTokensResult:
    """Tokens granted (and ids denied) by the catalog."""

    app_tokens: Dict[int, int] = field(default_factory=dict)
    package_tokens: Dict[int, int] = field(default_factory=dict)
    app_denied: Set[int] = field(default_factory=set)
    package_denied: Set[int] = field(default_factory=set)


@dataclass(frozen=True)
class ProductInfo:
    """Product info of one entity. Metadata-only responses carry no name."""

    id: int
    change_number: int
    name: Optional[str] = None


@dataclass
class ProductInfoResult:
    apps: Dict[int, ProductInfo] = field(default_factory=dict)
    packages: Dict[int, ProductInfo] = field(default_factory=dict)
    metadata_only: bool = False


class CatalogClient(Protocol):
    """Remote catalog operations used by the sync engine."""

    def get_access_tokens(self, app_ids: List[int], package_ids: List[int]) -> AccessTokensResult: ...

    def get_product_info(
        self,
        app_requests: List[ProductRequest],
        package_requests: List[ProductRequest],
        metadata_only: bool = False,
    ) -> ProductInfoResult: ...


def load_catalog_client(factory_path: Optional[str]):
    """Build the catalog client from a "package.module:callable" path.

    Returns:
        The client, or None when no factory is configured
    """
    if not factory_path:
        return None

    module_name, _, attr = factory_path.partition(':')
    if not module_name or not attr:
        raise ValueError(f"CATALOG_CLIENT_FACTORY must look like 'module:callable', got {factory_path!r}")

    module = importlib.import_module(module_name)
    return getattr(module, attr)()
