"""
Routers module - API endpoint handlers organized by feature.

- functions: the platform function surface (/functions/...)
- callback: OAuth redirect landing (/ and /callback)
"""
