"""api/routes/ -- Router modules and shared route helpers."""
