"""Parsers for Gemini responses."""
from .real_estate_parser import extract_json_object, parse_model_payload

__all__ = ["extract_json_object", "parse_model_payload"]
