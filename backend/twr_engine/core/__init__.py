"""
Core engine infrastructure: configuration, logging, errors, enums and
shared value objects.
"""
