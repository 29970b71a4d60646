#!/usr/bin/env python3
"""
Seed the catalog database
=========================
Creates the anime category hierarchy, the garment product types and a set
of demo products with per-size stock.

Usage:
  python scripts/seed_catalog.py
  python scripts/seed_catalog.py --database-url sqlite:///./storefront.db --products-per-anime 4
"""
import argparse
import random

from storefront.core.config import get_config
from storefront.core.services import build_services

# ── Category hierarchy ─────────────────────────────────────────────────────────
ROOT_CATEGORY = ("Anime", "🎌")
ANIME_SUBCATEGORIES = [
    "Naruto",
    "One Piece",
    "Demon Slayer",
    "Attack on Titan",
    "Jujutsu Kaisen",
    "Dragon Ball",
    "My Hero Academia",
    "Death Note",
    "Tokyo Ghoul",
    "Hunter x Hunter",
    "Bleach",
    "Fullmetal Alchemist",
]

# name -> (display name, item label, base price)
PRODUCT_TYPES = {
    "t-shirts": ("T-Shirts", "Tee", 599.0),
    "hoodies": ("Hoodies", "Hoodie", 1299.0),
    "accessories": ("Accessories", "Keychain", 299.0),
}

DESIGNS = ["Classic Logo", "Character Art", "Minimal Line", "Arc Poster", "Chibi Squad"]


def seed(database_url: str, products_per_anime: int, seed_value: int) -> int:
    config = get_config()
    config.database_url = database_url
    services = build_services(config)
    services.create_tables()
    catalog = services.catalog
    rng = random.Random(seed_value)

    root = catalog.create_category(ROOT_CATEGORY[0], icon=ROOT_CATEGORY[1])
    types = {
        name: catalog.create_product_type(name, display_name)
        for name, (display_name, _, _) in PRODUCT_TYPES.items()
    }

    created = 0
    for anime in ANIME_SUBCATEGORIES:
        subcategory = catalog.create_category(anime, parent_id=root["_id"])
        for design in rng.sample(DESIGNS, k=min(products_per_anime, len(DESIGNS))):
            type_name = rng.choice(list(PRODUCT_TYPES))
            _, label, base_price = PRODUCT_TYPES[type_name]
            catalog.create_product(
                name=f"{anime} {design} {label}",
                description=f"{design} {label.lower()} for {anime} fans.",
                price=base_price + rng.choice([0, 100, 200]),
                category_id=root["_id"],
                subcategory_id=subcategory["_id"],
                product_type_id=types[type_name]["_id"],
                tags=["anime", anime.lower(), type_name, design.lower()],
                total_stock=rng.randint(0, 60),
                is_featured=rng.random() < 0.15,
                images=[{"url": f"/images/{subcategory['slug']}-{design.lower().replace(' ', '-')}.jpg"}],
            )
            created += 1

    # Pages cached before the import would hide the new products until they expire
    catalog.invalidate_search_cache()
    return created


def main():
    parser = argparse.ArgumentParser(description="Seed the storefront catalog with demo data")
    parser.add_argument("--database-url", default=get_config().database_url, help="SQLAlchemy database URL")
    parser.add_argument("--products-per-anime", type=int, default=3, help="Products per subcategory (max 5)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed for reproducible stock")
    args = parser.parse_args()

    created = seed(args.database_url, args.products_per_anime, args.seed)
    print(f"Seeded {len(ANIME_SUBCATEGORIES)} subcategories and {created} products into {args.database_url}")


if __name__ == "__main__":
    main()
