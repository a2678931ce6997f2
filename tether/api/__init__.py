"""
Tether API Module

This module contains the FastAPI components of the relay:
- schemas: Pydantic models for API responses
- endpoints: Route handlers
"""
