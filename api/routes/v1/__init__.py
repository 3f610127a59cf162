"""api/routes/v1/ -- One router per role: auth, admin, user, store_owner."""
