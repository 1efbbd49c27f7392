"""auth/ -- Authentication and authorization package for KanTab.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/, web/, or core/ -- settings and collaborators are
passed in by the application assembly in api/main.py.
api/ and web/ import from auth/, not the other way around.
"""
