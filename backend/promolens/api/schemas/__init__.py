"""
Pydantic request/response models for the API.
"""
