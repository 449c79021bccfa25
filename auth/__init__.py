"""
auth — application session boundary.

Provides:
  • signed session token creation & verification (Bearer header or cookie)
  • bcrypt password hashing
  • Register / Login / Logout API routes
  • ``get_current_user_id`` / ``get_optional_user_id`` / ``require_admin``
    FastAPI dependencies
"""
