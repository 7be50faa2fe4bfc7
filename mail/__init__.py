"""mail/ -- Outbound email for bridge-auth.

Layer rule: mail/ imports only stdlib + third-party libraries. It does NOT
import from api/, auth/, or core/.
"""
