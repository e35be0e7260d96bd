"""Intent classification and canned replies."""

from .canned import CannedReply, CannedResponder
from .classifier import Classification, IntentClassifier, is_greeting
from .resources import load_lexicon, load_rules
from .tokenizer import tokenize

__all__ = [
    "CannedReply",
    "CannedResponder",
    "Classification",
    "IntentClassifier",
    "is_greeting",
    "load_lexicon",
    "load_rules",
    "tokenize",
]
