from solrbridge.schema.inspector import SchemaInspector
from solrbridge.schema.types import coerce_value, infer_logical_type

__all__ = ["SchemaInspector", "coerce_value", "infer_logical_type"]
