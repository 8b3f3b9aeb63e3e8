"""rokurelay -- WebSocket relay for Roku External Control Protocol.

Bridges a browser-hosted touch controller to a Roku device that only
speaks plain HTTP ECP. The controller keeps one persistent WebSocket
session open to the relay; the relay validates each key event and
forwards it to the device as ``POST /{action}/{key}`` on port 8060.
"""

__version__ = "0.1.0"
