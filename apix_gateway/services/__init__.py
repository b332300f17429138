"""Extension service invocation and the demo validation and storage services."""
