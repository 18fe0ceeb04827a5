from .models import Box, Catalog, Order, Page, Pair, Shelf, big_orders

__all__ = ["Box", "Catalog", "Order", "Page", "Pair", "Shelf", "big_orders"]
