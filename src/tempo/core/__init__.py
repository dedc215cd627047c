"""Process-wide infrastructure: logging, telemetry, metrics and the KV state store."""
