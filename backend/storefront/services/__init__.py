"""Service layer for the storefront payment backend."""
