"""projects/ -- Projects, teams, tasks, notes, and who may touch them.

Layer rule: projects/ imports only stdlib + third-party libraries and the
shared error types in auth/errors.py. It does NOT import from api/ or notify/.
"""
