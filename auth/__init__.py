"""auth/ -- Identity core for TaskBoard: accounts, verification tokens, sessions.

Layer rule: auth/ imports only stdlib + third-party libraries (and core/ for
settings types). It does NOT import from api/, projects/, or notify/.
api/ imports from auth/, not the other way around. The email sender is
injected into AccountLifecycle as a collaborator.
"""
