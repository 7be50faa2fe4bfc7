"""auth/ -- Authentication workflow and user directory for bridge-auth.

Layer rule: auth/ imports only stdlib + third-party libraries, plus mail/ for
the confirmation email. It does NOT import from api/ or core/ -- settings are
handed in by the caller. api/ imports from auth/, not the other way around,
with the single exception of auth/dependencies.py, which is part of the
FastAPI dependency injection system.
"""
