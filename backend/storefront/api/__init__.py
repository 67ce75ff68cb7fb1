"""HTTP routers for the storefront payment backend."""
