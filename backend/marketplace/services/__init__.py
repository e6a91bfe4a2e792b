"""Catalog, pricing, coupon, checkout and purchase history services."""
