"""Shopify 发布目标."""

from beansnews.shopify.client import MetaobjectRef, ShopifyClient, ShopifyConfig
from beansnews.shopify.mapping import build_fields, compute_handle

__all__ = [
    "MetaobjectRef",
    "ShopifyClient",
    "ShopifyConfig",
    "build_fields",
    "compute_handle",
]
