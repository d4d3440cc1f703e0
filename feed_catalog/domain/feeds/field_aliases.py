"""
Heuristic field-name table used when a feed has no explicit mapping.

For each canonical field, raw field names are tried in order and the first
present, non-empty value wins. Extend a list here to teach the mapper a new
vendor spelling.
"""
from typing import Dict, Tuple

CANONICAL_FIELDS: Tuple[str, ...] = (
    "title",
    "description",
    "short_description",
    "ean",
    "sku",
    "brand",
    "image_url",
    "affiliate_url",
    "category_path",
    "price",
)

# Older feed configurations use these names as mapping targets.
TARGET_ALIASES: Dict[str, str] = {
    "category": "category_path",
    "image": "image_url",
    "url": "affiliate_url",
}

FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "title": ("PRODUCTNAME", "PRODUCT", "NAME", "NAZOV", "TITLE", "title", "name"),
    "description": ("DESCRIPTION", "POPIS", "DESC", "description"),
    "short_description": ("SHORT_DESCRIPTION", "SHORTDESCRIPTION", "ANNOTATION", "short_description", "summary"),
    "ean": ("EAN", "EAN13", "GTIN", "BARCODE", "ean", "gtin"),
    "sku": ("SKU", "ITEM_ID", "PRODUCTNO", "KOD", "sku", "item_id", "id"),
    "brand": ("MANUFACTURER", "BRAND", "VYROBCE", "ZNACKA", "brand", "manufacturer"),
    "image_url": ("IMGURL", "IMG_URL", "IMAGE", "OBRAZOK", "image_url", "imgurl", "image_link", "image"),
    "affiliate_url": ("URL", "ITEM_URL", "PRODUCT_URL", "url", "link"),
    "category_path": ("CATEGORYTEXT", "CATEGORY", "KATEGORIA", "category", "category_path", "product_type"),
    "price": ("PRICE_VAT", "PRICE", "CENA", "price", "price_vat"),
}
