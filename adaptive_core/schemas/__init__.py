"""
Pydantic schemas for blueprints and API payloads.
"""
