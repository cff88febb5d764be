"""
Crash Alert - API Package

HTTP routers and their Pydantic schemas.
"""
