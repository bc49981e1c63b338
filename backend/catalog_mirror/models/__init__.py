"""
数据模型
"""
from .catalog_app import App
from .package import Package, PackageApp

__all__ = ['App', 'Package', 'PackageApp']
