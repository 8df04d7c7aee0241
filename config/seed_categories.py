"""Starter product category catalog.

Loaded by ``init_db.py``. The catalog grows on its own as sellers register
and requests are matched; this only avoids an empty first deployment.
"""

SEED_CATEGORIES = [
    # Electronics
    "Electronics",
    "Laptops",
    "Mobile Phones",
    "Phone Accessories",
    "Tech Accessories",
    "Headphones",
    "Gaming",
    # Study
    "Books",
    "Textbooks",
    "Stationery",
    "Printing Services",
    # Fashion
    "Clothing",
    "Shoes",
    "Bags",
    "Fashion Accessories",
    "Hair Accessories",
    "Jewelry",
    # Personal care
    "Skincare",
    "Cosmetics",
    "Hair Care",
    "Perfumes",
    # Food
    "Food Items",
    "Snacks",
    "Drinks",
    "Baked Goods",
    "Groceries",
    # Living
    "Bedding",
    "Kitchenware",
    "Home Decor",
    "Cleaning Supplies",
]
