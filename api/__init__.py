"""
FastAPI RESTful API for the Book Catalog.

This module exposes the catalog over HTTP:
- Book CRUD keyed by ISBN
- Category search and sorted listings
- Health check and interactive documentation
"""
