"""Pluggable collaborators that turn customer text and receipt photos into structured data."""
from fulfillment.parsing.intent_parser import IntentParser, LLMIntentParser
from fulfillment.parsing.receipt_reader import LLMReceiptReader, ReceiptReader

__all__ = ["IntentParser", "LLMIntentParser", "ReceiptReader", "LLMReceiptReader"]
