"""
Product views returned to clients.

Binary image payloads never leave the database layer: views carry image
metadata only, plus derived per-size availability.
"""
from typing import Any, Dict, Optional

from storefront.data.models import SIZES, Category, Product, ProductImage, ProductType


def _category_summary(category: Optional[Category]) -> Optional[Dict[str, Any]]:
    if category is None:
        return None
    return {"_id": category.id, "name": category.name, "slug": category.slug}


def _product_type_summary(product_type: Optional[ProductType]) -> Optional[Dict[str, Any]]:
    if product_type is None:
        return None
    return {
        "_id": product_type.id,
        "name": product_type.name,
        "displayName": product_type.display_name or product_type.name,
    }


def image_view(image: ProductImage, primary: bool) -> Dict[str, Any]:
    return {
        "_id": image.id,
        "url": image.url,
        "hasData": bool(image.has_data),
        "contentType": image.content_type,
        "caption": image.caption,
        "isPrimary": primary,
        "order": image.order,
    }


def size_availability(product: Product) -> Dict[str, bool]:
    stock = product.size_stock
    return {size: stock[size] > 0 for size in SIZES}


def product_view(product: Product) -> Dict[str, Any]:
    """JSON-ready view of a product (camelCase keys, metadata-only images)."""
    primary = product.primary_image()
    images = [image_view(image, image is primary) for image in product.images]
    size_stock = product.size_stock
    return {
        "_id": product.id,
        "name": product.name,
        "description": product.description,
        "price": product.price,
        "mrp": product.mrp,
        "category": _category_summary(product.category),
        "subcategory": _category_summary(product.subcategory),
        "productType": _product_type_summary(product.product_type),
        "tags": product.tags,
        "sizeStock": size_stock,
        "totalStock": product.total_stock,
        "sizeAvailability": size_availability(product),
        "hasStock": product.total_stock > 0,
        "isFeatured": bool(product.is_featured),
        "images": images,
        "primaryImage": image_view(primary, True) if primary is not None else None,
        "createdAt": product.created_at.isoformat() if product.created_at else None,
    }
