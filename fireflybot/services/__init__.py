from .amount_parser import AmountParser
from .field_parser import FieldEdit
from .nlp_service import LocalIntentExtractor

__all__ = [
    "AmountParser",
    "FieldEdit",
    "LocalIntentExtractor",
]
