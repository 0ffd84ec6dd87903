"""
pricing - Token registry, price normalization, price cache and polling.
"""
