from .extractor import compile_selector, extract, origin_of

__all__ = [
    "compile_selector",
    "extract",
    "origin_of",
]
