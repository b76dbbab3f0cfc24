"""MQTT ingestion — connection lifecycle, topic routing and dispatch.

The ConnectionManager owns the broker session and hands every inbound
publish to the MessageDispatcher, which persists it and notifies the hub.
Nothing downstream ever sees the MQTT client itself.
"""
