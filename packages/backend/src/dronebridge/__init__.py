"""DroneBridge — MQTT telemetry bridge.

Ingests drone/ship telemetry from an MQTT broker, records every accepted
update in PostgreSQL, and fans it out to live WebSocket and SSE viewers.
"""

__version__ = "0.1.0"
