"""pihub — Network-addressable hardware hub for Raspberry Pi class boards.

A remote client declares a named set of hardware modules (relays, ADCs,
sensors, raw I2C devices), each bound to a driver kind and its
configuration, then invokes named actions on them over HTTP/JSON.

Architecture layers (bottom to top):
    1. Hardware — GPIO and I2C backends, shared resource provider
    2. Modules  — module contract, config binder, built-in drivers
    3. Runtime  — registry and the concurrency-safe module manager
    4. API/CLI  — FastAPI HTTP server, typer CLI, httpx client
"""

__version__ = "0.1.0"
__author__ = "pihub Contributors"
__license__ = "Apache-2.0"

__all__ = ["__version__"]
