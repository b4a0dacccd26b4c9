"""QuickShop platform billing and subscription engine."""
