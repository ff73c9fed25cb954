"""runfinder_shared — Shared utilities for Run Finder Lambda functions.

Provides:
    - DynamoDB client singleton
    - HTTP response helpers with CORS
    - DynamoDB serialization/deserialization and structured log lines
"""

__version__ = "1.0.0"
