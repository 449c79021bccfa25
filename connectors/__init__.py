"""
connectors — third-party connection subsystem.

Handles:
  • credential codec for the ``connection_key`` column (all legacy forms)
  • connection store (list / get / create / update / delete)
  • Google OAuth2: consent URL, code → token exchange, refresh
  • signed round-trip state and the callback that assigns the agent
"""
