from .converter import MISSING, Validator, convert, parse_schema, to_json_schema

__all__ = ["MISSING", "Validator", "convert", "parse_schema", "to_json_schema"]
