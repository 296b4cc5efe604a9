"""auth/ -- Authentication and authorization package for DeptConnect.

Layer rule: auth/ imports only stdlib + third-party libraries + core/.
It does NOT import from api/ or content/.
api/ imports from auth/, not the other way around. The guard reaches
resources through the ResourceLookup protocol, which content/ implements.
"""
