"""Magic file parsing, text description, CDF timestamp and buffer helpers."""

__version__ = "0.1.0"

__all__ = ["magic_types", "magic_values", "magic_parse", "magic_load", "text", "cdf_time", "buffer"]