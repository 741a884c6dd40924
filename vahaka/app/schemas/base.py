"""
Shared schema base.

Persisted records and request bodies use camelCase on the wire; Python code
uses snake_case attributes.
"""

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase field names."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
